# Blueprint registration module

# Import all blueprints
from .switches import switches_bp
from .recipients import recipients_bp
from .verifiers import verifiers_bp
from .verify import verify_bp
from .checkin import checkin_bp
from .cron import cron_bp

__all__ = [
    'switches_bp',
    'recipients_bp',
    'verifiers_bp',
    'verify_bp',
    'checkin_bp',
    'cron_bp'
]
