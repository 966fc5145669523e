"""Handler middleware plugins.

Importing this package stays side-effect free; concrete plugins (``logging``)
register themselves with ``Dispatcher`` when their module is imported (see
``dbusroute.__init__``).
"""

__all__: list[str] = []
