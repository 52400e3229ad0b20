"""
Authorization feature module.

Action gate (effective permission sets) and data gate (row filters) for
the current principal.
"""
