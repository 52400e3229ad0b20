"""
Role management feature module.

Named roles carrying action permissions, role inheritance and the
principal assignments that tie external identities to roles.
"""
