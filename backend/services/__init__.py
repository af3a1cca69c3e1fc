"""
Services package - Business logic layer.

This package contains all business logic services that operate on Django models
but are decoupled from the HTTP/WebSocket layer.

Modules:
    - allocation_engine: Allocation lifecycle, settlement and periodic checks
    - matching: Allocation alerts offered to drivers
"""
