"""
Realtime app: allocation events over WebSockets and driver push notifications.

Key Components:
    - notifications.py: RealtimeChannel publishing to company-<id> / driver-<id> rooms
    - push.py: Firebase Cloud Messaging push to drivers
    - consumers/: WebSocket consumer relaying room events to sockets
    - routing.py: WebSocket URL patterns

Usage:
    from realtime.notifications import RealtimeChannel
    from realtime.push import send_push_notification, push_to_driver
"""
