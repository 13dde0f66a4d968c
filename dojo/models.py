from flask_sqlalchemy import SQLAlchemy
from dojo.datetime_utils import utcnow

db = SQLAlchemy()


class OutboxRecord(db.Model):
    """Persisted outbox entry: one pending external side effect and its retry state."""
    __tablename__ = "outbox"

    id = db.Column(db.String(36), primary_key=True)
    action_type = db.Column(db.String(64), nullable=False)  # 'github_issue', 'email', ...
    payload = db.Column(db.Text, nullable=False)  # JSON document, opaque to the engine
    status = db.Column(db.String(20), nullable=False, default="pending")

    # Retry state
    attempts = db.Column(db.Integer, nullable=False, default=0)
    max_attempts = db.Column(db.Integer, nullable=False, default=5)
    last_attempted_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    # Outcome
    external_id = db.Column(db.String(255), nullable=False, default="")
    error_message = db.Column(db.Text, nullable=False, default="")

    # Concurrency control: optimistic version plus a lease held during an attempt
    version = db.Column(db.Integer, nullable=False, default=0)
    claimed_until = db.Column(db.DateTime, nullable=True)

    __table_args__ = (
        db.Index('idx_outbox_status', 'status'),
        db.Index('idx_outbox_action_type', 'action_type'),
        db.Index('idx_outbox_created_at', 'created_at'),
    )

    def __repr__(self):
        return f"<OutboxRecord {self.id} - {self.action_type} - {self.status}>"
