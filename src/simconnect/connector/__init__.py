"""
A connector opens a transport handle for one ConnectionMethod. The handle is the only
thing a session holds on to: it answers the liveness probe, carries one command at a
time and closes the transport.

ConnectorTable maps every method to its connector. Methods this installation cannot
provide map to an UnsupportedConnector.
"""
