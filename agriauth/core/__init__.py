"""
Authorization core package.

Role hierarchy, permission catalog, the authorization engine and the
swappable policy store that ties them together.
"""
