from coinhost import create_app
from coinhost.services import get_services

app = create_app()

if __name__ == '__main__':
    # Run the expiration sweeper alongside the dev server
    get_services(app).sweeper.start(app)
    app.run(debug=True, use_reloader=False)
