"""
Routes package for the SmartLocations API
Blueprint-based modular route organization
"""


def register_blueprints(app):
    """
    Register all route blueprints with the Quart app

    Admin routes (health, metrics) first, then the API routes.
    """
    from .admin import register as register_admin
    from .search import register as register_search
    from .geocode import register as register_geocode
    from .ai import register as register_ai
    from .preferences import register as register_preferences

    register_admin(app)
    register_search(app)
    register_geocode(app)
    register_ai(app)
    register_preferences(app)
