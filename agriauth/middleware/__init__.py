"""
Request-side middleware: actor resolution and the authorization Gate.
"""
