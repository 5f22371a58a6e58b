# HTTP adapters for routing and geocoding backends.
