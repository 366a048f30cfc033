from app.scholartrack import create_app

app = create_app()
