"""
Application services built on the entity sets and the executor.
"""
