"""Background Tasks Service.
Runs the switch scheduler on a fixed interval and cleans up expired check-in links.
"""
import schedule
import time
import logging

from services.scheduler import Scheduler
from services.switch_service import cleanup_expired_check_in_tokens


logger = logging.getLogger('background_tasks')


class BackgroundTaskProcessor:

    def __init__(self, app=None):
        self.app = app
        self.scheduler = None

        if app:
            self.init_app(app)

    def init_app(self, app):
        """Initialize with Flask app"""
        self.app = app
        interval = app.config.get('SCHEDULER_INTERVAL_MINUTES', 5)

        # Schedule tasks
        schedule.every(interval).minutes.do(self.run_switch_scheduler)
        schedule.every().day.at("02:00").do(self.cleanup_expired_tokens)

    def run_scheduler(self):
        """Run the background scheduler (should be called in a separate process/thread)"""
        with self.app.app_context():
            logger.info("Background task scheduler started")

            # Catch up immediately instead of waiting a full interval
            self.run_switch_scheduler()

            while True:
                try:
                    schedule.run_pending()
                    time.sleep(5)
                except Exception as e:
                    logger.error(f"Background scheduler error: {e}", exc_info=True)
                    time.sleep(5)

    def run_switch_scheduler(self):
        """Run every scheduler pass once"""
        logger.debug("Running switch scheduler...")
        try:
            with self.app.app_context():
                if self.scheduler is None:
                    self.scheduler = Scheduler()
                reports = self.scheduler.run_all_jobs()
                for report in reports:
                    if report.acted or report.errors:
                        logger.info(f"{report.name}: {report.acted}/{report.processed} acted on, "
                                    f"{len(report.errors)} error(s)")
                return reports
        except Exception as e:
            logger.error(f"Error running switch scheduler: {e}", exc_info=True)
            return None

    def cleanup_expired_tokens(self):
        """Clean up expired check-in tokens"""
        logger.debug("Running expired token cleanup...")
        try:
            with self.app.app_context():
                cleaned = cleanup_expired_check_in_tokens()
                if cleaned > 0:
                    logger.info(f"Cleaned up {cleaned} expired check-in tokens")
                else:
                    logger.debug("No expired tokens to clean up.")
                return cleaned
        except Exception as e:
            logger.error(f"Error cleaning up expired tokens: {e}", exc_info=True)
            return 0


# Standalone function to run the background processor
def run_background_tasks(app):
    """Run background tasks - should be called in a separate process"""
    processor = BackgroundTaskProcessor(app)
    processor.run_scheduler()
