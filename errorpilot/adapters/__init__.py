"""External adapters for the Errorpilot telemetry layer.

This package contains all backend integrations and provides
implementations of the core port interfaces.

Adapter Organization:

- telemetry/: Adapters for retrieving error logs (Loki) and traces (Tempo)
"""
