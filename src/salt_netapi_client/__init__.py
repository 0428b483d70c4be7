"""Salt NetAPI client.

Client library for the Salt NetAPI rest_cherrypy module: authenticates
against a Salt master, keeps the session token, and issues authorized
requests with JSON decoding.
"""

__version__ = "0.1.0"
