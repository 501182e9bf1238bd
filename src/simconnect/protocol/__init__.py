"""
The command/status protocol: the commands a client can send, the statuses a server
replies with, their wire encoding, and the channel that submits commands to a session.
"""
