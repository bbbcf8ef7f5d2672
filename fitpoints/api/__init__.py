"""
JSON API blueprints.
"""
