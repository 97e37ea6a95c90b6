__version__ = "0.1.0"

# Wire API version this client speaks
API_VERSION = "v2"
