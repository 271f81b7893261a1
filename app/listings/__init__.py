"""
Listings app.

Holds the escrow-relevant slice of a marketplace listing: who sells it,
what it costs and whether it is still available.
"""
