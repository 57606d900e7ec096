"""
PackERP Manufacturing Backend
HTTP blueprints.
"""
