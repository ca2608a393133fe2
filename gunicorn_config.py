"""
Gunicorn config. Loads the program catalogue in each worker process
(post_fork) so the first API request does not pay for the read/fetch.

when_ready hook runs a post-deploy smoke test against localhost once the
server is accepting connections.
"""

import logging
import os
import threading


def when_ready(server):
    """Run smoke test in a background thread once gunicorn is listening."""
    port = os.environ.get("PORT", "8000")
    base_url = f"http://127.0.0.1:{port}"

    def _run_smoke():
        import time
        time.sleep(2)  # brief grace period for workers to finish forking
        logger = logging.getLogger("gunicorn.error")
        try:
            from smoke_test import run_tests
            logger.info("Post-deploy smoke test starting against %s", base_url)
            ok = run_tests(base_url)
            if ok:
                logger.info("Post-deploy smoke test PASSED")
            else:
                logger.error("Post-deploy smoke test FAILED")
        except Exception:
            logger.exception("Post-deploy smoke test crashed")

    t = threading.Thread(target=_run_smoke, daemon=True)
    t.start()


def post_fork(server, worker):
    """Warm the catalogue cache in this gunicorn worker process."""
    try:
        from app import get_catalogue
        catalogue, dropped = get_catalogue()
        logging.getLogger(__name__).info(
            "Worker %s loaded %d programs (%d dropped)", worker.pid, len(catalogue), dropped
        )
    except Exception as e:
        # Requests will retry the load and surface a 503 if it still fails
        logging.getLogger(__name__).exception("Failed to load catalogue: %s", e)
