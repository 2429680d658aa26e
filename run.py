import uvicorn
from autocomment.app import app
from autocomment.logging_config import configure_logging
from autocomment.settings import settings

def main():
    configure_logging(settings.LOG_LEVEL)
    config = uvicorn.Config(app, host=settings.HOST, port=settings.PORT, log_config=None)
    server = uvicorn.Server(config)
    server.run()

if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        pass
