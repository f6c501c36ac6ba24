"""sesame – password, passkey and federated sign-in around one session state machine."""

from sesame.app import create_app
from sesame.config import Settings
from sesame.version import __version__

__all__ = ["Settings", "__version__", "create_app"]
