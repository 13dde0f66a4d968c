from dojo import create_app

app = create_app()

# Run a single worker process with RUN_OUTBOX_WORKER=1 so only one process owns the outbox queue:
#   RUN_OUTBOX_WORKER=1 gunicorn -w 1 wsgi:app
