"""Run the poll job once without the web server, e.g. from cron:

    python -m autocomment.poll_runner
"""
import logging
import sys

from .db import init_db, make_engine, make_sessionmaker
from .logging_config import configure_logging
from .poll import PollAborted, PollJob
from .settings import settings
from .youtube import YouTubeClient

log = logging.getLogger(__name__)


def main() -> int:
    configure_logging(settings.LOG_LEVEL)
    settings.ensure_complete()
    engine = make_engine(settings.DATABASE_URL)
    init_db(engine)
    youtube = YouTubeClient(
        client_id=settings.CLIENT_ID,
        client_secret=settings.CLIENT_SECRET,
        redirect_uri=settings.REDIRECT_URL,
        api_key=settings.YOUTUBE_API_KEY,
        timeout=settings.HTTP_TIMEOUT,
    )
    db = make_sessionmaker(engine)()
    try:
        PollJob(db, youtube, continue_on_post_error=settings.POLL_CONTINUE_ON_POST_ERROR).run()
    except PollAborted as e:
        log.error("Poll run aborted after %s: %s", e.report.as_dict(), e.reason)
        return 1
    finally:
        db.close()
        engine.dispose()
    return 0


if __name__ == "__main__":
    sys.exit(main())
