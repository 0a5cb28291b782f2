"""SSDP discovery responder and UPnP description for the emulated bridge."""
from __future__ import annotations

import asyncio
from contextlib import suppress
import logging
import socket

from aiohttp import web

from .const import (
    HUE_SERIAL_NUMBER,
    HUE_UUID,
    UPNP_MAX_AGE,
    UPNP_MULTICAST_GROUP,
    UPNP_PORT,
)
from .view import BridgeView

_LOGGER = logging.getLogger(__name__)

ST_BASIC_DEVICE = "urn:schemas-upnp-org:device:basic:1"
ST_ROOT_DEVICE = "upnp:rootdevice"
ST_ALL = "ssdp:all"

# Search targets we answer; the reply always advertises a basic device
# except for root device searches.
ACCEPTED_SEARCH_TARGETS = {ST_BASIC_DEVICE, ST_ROOT_DEVICE, ST_ALL}

SERVER_BANNER = "FreeRTOS/6.0.5, UPnP/1.0, IpBridge/1.17.0"


class DescriptionXmlView(BridgeView):
    """Handles requests for the UPnP description document."""

    url = "/description.xml"
    name = "description:xml"

    def __init__(self, advertise_ip: str, advertise_port: int) -> None:
        """Initialize the instance of the view."""
        self.advertise_ip = advertise_ip
        self.advertise_port = advertise_port

    async def get(self, request: web.Request) -> web.Response:
        """Handle a GET request."""
        resp_text = f"""<?xml version="1.0" encoding="UTF-8" ?>
<root xmlns="urn:schemas-upnp-org:device-1-0">
<specVersion>
<major>1</major>
<minor>0</minor>
</specVersion>
<URLBase>http://{self.advertise_ip}:{self.advertise_port}/</URLBase>
<device>
<deviceType>urn:schemas-upnp-org:device:Basic:1</deviceType>
<friendlyName>Philips hue ({self.advertise_ip})</friendlyName>
<manufacturer>Royal Philips Electronics</manufacturer>
<manufacturerURL>http://www.philips.com</manufacturerURL>
<modelDescription>Philips hue Personal Wireless Lighting</modelDescription>
<modelName>Philips hue bridge 2015</modelName>
<modelNumber>BSB002</modelNumber>
<modelURL>http://www.meethue.com</modelURL>
<serialNumber>{HUE_SERIAL_NUMBER}</serialNumber>
<UDN>uuid:{HUE_UUID}</UDN>
<presentationURL>admin</presentationURL>
</device>
</root>
"""
        return web.Response(text=resp_text, content_type="text/xml")


def _parse_search_target(text: str) -> str | None:
    """Return the ST header of an M-SEARCH request, or None."""
    lines = text.replace("\r\n", "\n").split("\n")
    if not lines or not lines[0].upper().startswith("M-SEARCH"):
        return None
    for line in lines[1:]:
        name, sep, value = line.partition(":")
        if sep and name.strip().upper() == "ST":
            return value.strip().strip('"')
    return None


def create_upnp_response(
    data: bytes, advertise_ip: str, advertise_port: int
) -> bytes | None:
    """Build the reply to an SSDP datagram, or None if it must be ignored."""
    text = data.decode("utf-8", errors="replace")
    search_target = _parse_search_target(text)
    if search_target is None:
        return None
    if search_target.lower() not in ACCEPTED_SEARCH_TARGETS:
        return None

    reply_target = (
        ST_ROOT_DEVICE if search_target.lower() == ST_ROOT_DEVICE else ST_BASIC_DEVICE
    )
    response = (
        "HTTP/1.1 200 OK\r\n"
        f"CACHE-CONTROL: max-age={UPNP_MAX_AGE}\r\n"
        "EXT:\r\n"
        f"LOCATION: http://{advertise_ip}:{advertise_port}/description.xml\r\n"
        f"SERVER: {SERVER_BANNER}\r\n"
        f"hue-bridgeid: {HUE_SERIAL_NUMBER}\r\n"
        f"ST: {reply_target}\r\n"
        f"USN: uuid:{HUE_UUID}::{reply_target}\r\n"
        "\r\n"
    )
    return response.encode("utf-8")


class UPNPResponderProtocol(asyncio.DatagramProtocol):
    """Answer SSDP searches for a Hue bridge."""

    def __init__(
        self,
        ssdp_socket: socket.socket | None,
        advertise_ip: str,
        advertise_port: int,
    ) -> None:
        """Initialize the class."""
        self.transport: asyncio.DatagramTransport | None = None
        self._ssdp_socket = ssdp_socket
        self.advertise_ip = advertise_ip
        self.advertise_port = advertise_port

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        """Set the transport."""
        self.transport = transport  # type: ignore[assignment]

    def error_received(self, exc: Exception) -> None:
        """Log UPnP errors; the endpoint stays open."""
        _LOGGER.error("UPNP Error received: %s", exc)

    def connection_lost(self, exc: Exception | None) -> None:
        """Log the end of the endpoint."""
        if exc is not None:
            _LOGGER.error("UPNP Connection lost: %s", exc)

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        """Reply to matching M-SEARCH requests."""
        response = create_upnp_response(data, self.advertise_ip, self.advertise_port)
        if response is None:
            return

        _LOGGER.debug("UPNP Responder answering %s:%s", addr[0], addr[1])
        if self.transport is not None:
            self.transport.sendto(response, addr)

    def close(self) -> None:
        """Stop the server."""
        _LOGGER.info("UPNP responder shutting down")
        if self.transport:
            self.transport.close()
        if self._ssdp_socket:
            self._ssdp_socket.close()


async def async_create_upnp_datagram_endpoint(
    host_ip_addr: str,
    upnp_bind_multicast: bool,
    advertise_ip: str,
    advertise_port: int,
) -> UPNPResponderProtocol:
    """Create the SSDP socket, join the multicast group and start answering."""
    ssdp_socket = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    ssdp_socket.setblocking(False)

    # Required for receiving multicast
    ssdp_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    with suppress(AttributeError):
        ssdp_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)

    ssdp_socket.setsockopt(
        socket.SOL_IP, socket.IP_MULTICAST_IF, socket.inet_aton(host_ip_addr)
    )
    ssdp_socket.setsockopt(
        socket.SOL_IP,
        socket.IP_ADD_MEMBERSHIP,
        socket.inet_aton(UPNP_MULTICAST_GROUP) + socket.inet_aton(host_ip_addr),
    )

    ssdp_socket.bind(("" if upnp_bind_multicast else host_ip_addr, UPNP_PORT))

    loop = asyncio.get_running_loop()
    _, protocol = await loop.create_datagram_endpoint(
        lambda: UPNPResponderProtocol(ssdp_socket, advertise_ip, advertise_port),
        sock=ssdp_socket,
    )
    _LOGGER.info(
        "UPNP responder listening on %s:%d, advertising %s:%d",
        UPNP_MULTICAST_GROUP,
        UPNP_PORT,
        advertise_ip,
        advertise_port,
    )
    return protocol
