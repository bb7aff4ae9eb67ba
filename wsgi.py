from callnotes import create_app

app = create_app()
