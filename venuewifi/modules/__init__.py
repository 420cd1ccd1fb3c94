"""
VenueWifi Modules
=================

Flask blueprint modules registered by the VenueWifi extension.
"""

__all__ = ['auth', 'campaigns', 'email', 'wifi']
