"""
Domain Value Objects Package
=============================
Contains immutable value objects and the exception hierarchy.

Value objects are immutable objects that represent descriptive aspects of the domain
with no conceptual identity. They are defined only by their attributes.
"""
