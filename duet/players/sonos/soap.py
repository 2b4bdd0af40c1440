# Duet
# Copyright (C) 2026 Duet contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Minimal SOAP 1.1 caller for the four UPnP services a ZonePlayer exposes.

    soap = SOAPClient()
    resp = await soap.call("10.0.0.5", 1400, AV_TRANSPORT, "GetTransportInfo",
                           {"InstanceID": "0"})
    state = resp.findtext("CurrentTransportState")

call() returns the ``<u:ActionResponse>`` element so callers pick out
exactly the fields they need.  Argument values are XML-escaped.
"""

import asyncio
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from xml.sax.saxutils import escape as xml_escape

import aiohttp

from ...lib.errors import NetworkError, ProtocolError, SOAPError

log = logging.getLogger('duet-sonos')

SOAP_TIMEOUT = 10


@dataclass(frozen=True)
class Service:
    name: str
    urn: str
    control_path: str


AV_TRANSPORT = Service(
    "AVTransport",
    "urn:schemas-upnp-org:service:AVTransport:1",
    "/MediaRenderer/AVTransport/Control")
RENDERING_CONTROL = Service(
    "RenderingControl",
    "urn:schemas-upnp-org:service:RenderingControl:1",
    "/MediaRenderer/RenderingControl/Control")
ZONE_GROUP_TOPOLOGY = Service(
    "ZoneGroupTopology",
    "urn:schemas-upnp-org:service:ZoneGroupTopology:1",
    "/ZoneGroupTopology/Control")
DEVICE_PROPERTIES = Service(
    "DeviceProperties",
    "urn:schemas-upnp-org:service:DeviceProperties:1",
    "/DeviceProperties/Control")


def build_envelope(service: Service, action: str, args: dict | None = None) -> str:
    body_parts = [f"<{k}>{xml_escape(str(v))}</{k}>" for k, v in (args or {}).items()]
    return (
        "<?xml version=\"1.0\" encoding=\"utf-8\"?>"
        "<s:Envelope xmlns:s=\"http://schemas.xmlsoap.org/soap/envelope/\" "
        "s:encodingStyle=\"http://schemas.xmlsoap.org/soap/encoding/\">"
        "<s:Body>"
        f"<u:{action} xmlns:u=\"{service.urn}\">"
        + "".join(body_parts)
        + f"</u:{action}>"
        "</s:Body>"
        "</s:Envelope>"
    )


def soap_action_header(service: Service, action: str) -> str:
    return f'"{service.urn}#{action}"'


def parse_fault(root) -> tuple[str, str] | None:
    """Return (errorCode, description) if *root* holds a SOAP Fault."""
    fault = root.find(".//{*}Fault")
    if fault is None:
        return None
    code = (root.findtext(".//{*}errorCode") or "").strip()
    desc = (root.findtext(".//{*}errorDescription")
            or root.findtext(".//{*}faultstring") or "").strip()
    return code, desc


def parse_response(action: str, status: int, text: str):
    """Turn an HTTP reply into the action-response element or raise."""
    try:
        root = ET.fromstring(text) if text.strip() else None
    except ET.ParseError as e:
        if status >= 400:
            raise SOAPError(action, status) from e
        raise ProtocolError(f"malformed SOAP response to {action}: {e}") from e

    if root is not None:
        fault = parse_fault(root)
        if fault is not None:
            code, desc = fault
            raise SOAPError(action, status, fault=True, error_code=code, description=desc)
    if status >= 400:
        raise SOAPError(action, status)
    if root is None:
        raise ProtocolError(f"empty SOAP response to {action}")

    resp = root.find(f".//{{*}}{action}Response")
    if resp is None:
        raise ProtocolError(f"SOAP response to {action} has no {action}Response element")
    return resp


class SOAPClient:
    def __init__(self, session: aiohttp.ClientSession | None = None,
                 timeout: float = SOAP_TIMEOUT):
        self._session = session
        self._owns_session = session is None
        self.timeout = timeout

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout))
            self._owns_session = True
        return self._session

    async def close(self):
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def call(self, host: str, port: int, service: Service, action: str,
                   args: dict | None = None):
        url = f"http://{host}:{port}{service.control_path}"
        envelope = build_envelope(service, action, args)
        headers = {
            "Content-Type": "text/xml; charset=\"utf-8\"",
            "SOAPACTION": soap_action_header(service, action),
        }
        log.debug("SOAP %s.%s → %s:%d", service.name, action, host, port)
        session = await self._get_session()
        try:
            async with session.post(url, data=envelope.encode("utf-8"),
                                    headers=headers) as resp:
                status = resp.status
                text = await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(f"SOAP {action} to {host}:{port}: {e}") from e
        return parse_response(action, status, text)
