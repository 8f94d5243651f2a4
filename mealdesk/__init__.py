"""
mealdesk: lunch ordering console backed by a transactional data-access layer.
"""

__version__ = "0.1.0"
