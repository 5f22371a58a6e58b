# Guidance engine: step tracking, route session, message emission.
