"""
Process-wide defaults for connections.

The values below are overridden by the settings*.cfg files beside this module and by
a per-user settings.cfg (see simconnect.config.config.user_config_dir) when configure()
is called.
"""
import sys

from simconnect.config.config import configure_module

# maximum number of concurrently open sessions in one registry
capacity = 1024

# seconds a command may block before it times out
timeout = 10.0

hostname = 'localhost'
udp_port = 1234
tcp_port = 6667
grpc_port = 6667

shared_memory_key = 12347
# bytes reserved for each of the command and status buffers
shared_memory_size = 65536
# seconds between polls of a shared memory mailbox
poll_interval = 0.0005


def configure(directory=None):
    """ applies the layered configuration files to this module. """
    return configure_module(sys.modules[__name__], directory=directory)
