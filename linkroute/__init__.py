"""Link-state routing daemon: hellos, LSA flooding, shortest paths and a TCP control port."""

__version__ = "0.1.0"