"""Access to Flask config from services that may run outside a request."""
from flask import current_app, has_app_context


def config_value(key, default=None):
    """Return app.config[key] inside an app context, else the default."""
    if has_app_context():
        return current_app.config.get(key, default)
    return default
