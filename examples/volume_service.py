"""
Example exposing a small volume-control object on the session bus.

Run it, then from another shell:

    busctl --user call org.example.Volume /org/example/volume org.example.Volume Mute
    busctl --user get-property org.example.Volume /org/example/volume org.example.Volume Volume
"""

from __future__ import annotations

import logging
import threading
import time

from jeepney.bus_messages import message_bus
from jeepney.io.blocking import open_dbus_connection

from dbusroute import (
    ArgInfo,
    FilterEntry,
    InterfaceInfo,
    InterfaceSkeletonEx,
    MethodInfo,
    ObjectServer,
    PropertyInfo,
    SkeletonVTable,
    new_interface_skeleton,
)
from dbusroute.core.errors import UnknownPropertyError

BUS_NAME = "org.example.Volume"
PATH = "/org/example/volume"

INFO = InterfaceInfo(
    name="org.example.Volume",
    methods=(
        MethodInfo(name="Mute"),
        MethodInfo(name="Ramp", in_args=(ArgInfo(signature="i", name="target"),)),
    ),
    properties=(
        PropertyInfo(name="Volume", signature="i", access="readwrite"),
        PropertyInfo(name="Muted", signature="b"),
    ),
)


class Mixer:
    def __init__(self):
        self.lock = threading.Lock()
        self.volume = 50
        self.muted = False
        self.server: ObjectServer | None = None

    def bag(self):
        return {"Volume": ("i", self.volume), "Muted": ("b", self.muted)}

    def changed(self):
        if self.server is not None:
            self.server.emit_properties_changed(PATH, INFO.name, self.bag())


def mute(invocation, mixer: Mixer):
    with mixer.lock:
        mixer.muted = True
    invocation.return_value()
    mixer.changed()


def ramp(invocation, mixer: Mixer):
    (target,) = invocation.parameters
    # reply first; the ramp itself takes a while
    invocation.return_value()
    step = 1 if target > mixer.volume else -1
    while mixer.volume != target:
        with mixer.lock:
            mixer.volume += step
        time.sleep(0.02)
    mixer.changed()


def get_property(name, mixer: Mixer):
    bag = mixer.bag()
    if name not in bag:
        raise UnknownPropertyError(f"No such property '{name}'")
    return bag[name]


def set_property(name, value, mixer: Mixer):
    _, volume = value
    if not 0 <= volume <= 100:
        return False
    with mixer.lock:
        mixer.volume = volume
    mixer.changed()
    return True


class VolumeSkeleton(InterfaceSkeletonEx):
    pass


def main():
    logging.basicConfig(level=logging.DEBUG)
    mixer = Mixer()
    vtable = SkeletonVTable(
        dispatchers=[
            FilterEntry(handler=mute, method="Mute"),
            FilterEntry(handler=ramp, method="Ramp", detached=True),
        ],
        get_property=get_property,
        set_property=set_property,
        get_properties=lambda m: m.bag(),
    )
    skeleton = new_interface_skeleton(
        VolumeSkeleton, INFO, vtable, mixer, lambda m: logging.info("mixer released")
    )
    skeleton.dispatcher.plug("logging", level="INFO")

    with open_dbus_connection(bus="SESSION") as conn:
        conn.send_and_get_reply(message_bus.RequestName(BUS_NAME))
        server = ObjectServer(conn)
        mixer.server = server
        server.export(PATH, skeleton)
        server.serve_forever()


if __name__ == "__main__":
    main()
