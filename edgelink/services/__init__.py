"""
Services module for business logic separation.

Link creation and resolution, short link visits, telemetry aggregation and
the edge cache live here, independent of the HTTP layer in edgelink.api.
"""
