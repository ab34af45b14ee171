import logging

from .config import Config
from .web import create_app

logging.basicConfig(level=logging.INFO)

app = create_app()

if __name__ == '__main__':
    app.run(debug=True, host=Config.HOST, port=Config.PORT)
