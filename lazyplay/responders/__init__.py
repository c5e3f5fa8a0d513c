"""Response providers.

Scripted providers are pure and drive tests and replays; the live provider wraps external
input/output capabilities (mailbox, websocket, LLM participant) selected by the host.
"""
