"""
Data permission feature module.

Row-level filters attached to roles: each rule restricts which records of
one entity class the role's members may see.
"""
