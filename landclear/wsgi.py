from landclear import create_app

app = create_app()
