"""Tests for the SOAP caller against a local aiohttp server."""

import xml.etree.ElementTree as ET

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from duet.lib.errors import NetworkError, ProtocolError, SOAPError
from duet.players.sonos.soap import AV_TRANSPORT, RENDERING_CONTROL, SOAPClient

ENVELOPE = (
    '<s:Envelope xmlns:s="http://schemas.xmlsoap.org/soap/envelope/"><s:Body>'
    '{}</s:Body></s:Envelope>'
)

FAULT = ENVELOPE.format(
    '<s:Fault><faultcode>s:Client</faultcode><faultstring>UPnPError</faultstring>'
    '<detail><UPnPError xmlns="urn:schemas-upnp-org:control-1-0">'
    '<errorCode>701</errorCode><errorDescription>Transition not available</errorDescription>'
    '</UPnPError></detail></s:Fault>'
)


@pytest.fixture
async def speaker():
    """A fake ZonePlayer; ``speaker(handler)`` returns (host, port, seen requests)."""
    servers = []

    async def _start(handler, path=AV_TRANSPORT.control_path):
        seen = []

        async def control(request):
            seen.append({
                "path": request.path,
                "method": request.method,
                "soapaction": request.headers.get("SOAPACTION"),
                "content_type": request.headers.get("Content-Type"),
                "body": await request.text(),
            })
            return await handler(request)

        app = web.Application()
        app.router.add_route("*", path, control)
        server = TestServer(app)
        await server.start_server()
        servers.append(server)
        url = server.make_url("/")
        return url.host, url.port, seen

    yield _start

    for s in servers:
        await s.close()


@pytest.fixture
async def soap():
    client = SOAPClient(timeout=2)
    yield client
    await client.close()


async def test_request_shape(speaker, soap):
    async def ok(request):
        return web.Response(
            text=ENVELOPE.format('<u:PlayResponse xmlns:u="urn:schemas-upnp-org:service:'
                                 'AVTransport:1"></u:PlayResponse>'),
            content_type="text/xml")

    host, port, seen = await speaker(ok)
    resp = await soap.call(host, port, AV_TRANSPORT, "Play", {"InstanceID": 0, "Speed": 1})

    assert resp.tag.endswith("PlayResponse")
    req = seen[0]
    assert req["method"] == "POST"
    assert req["path"] == "/MediaRenderer/AVTransport/Control"
    assert req["soapaction"] == '"urn:schemas-upnp-org:service:AVTransport:1#Play"'
    assert req["content_type"].startswith("text/xml")
    body = ET.fromstring(req["body"])
    action = body.find(".//{urn:schemas-upnp-org:service:AVTransport:1}Play")
    assert action.findtext("InstanceID") == "0"
    assert action.findtext("Speed") == "1"


async def test_arguments_are_escaped_on_the_wire(speaker, soap):
    async def ok(request):
        return web.Response(text=ENVELOPE.format(
            '<u:SetAVTransportURIResponse xmlns:u="urn:x"/>'), content_type="text/xml")

    host, port, seen = await speaker(ok)
    uri = "x-sonos-spotify:spotify:track:1?sid=12&flags=8224&sn=1"
    await soap.call(host, port, AV_TRANSPORT, "SetAVTransportURI",
                    {"InstanceID": "0", "CurrentURI": uri, "CurrentURIMetaData": "<DIDL/>"})
    raw = seen[0]["body"]
    assert "sid=12&amp;flags=8224&amp;sn=1" in raw
    assert "&lt;DIDL/&gt;" in raw
    parsed = ET.fromstring(raw).find(".//CurrentURI")
    assert parsed.text == uri


async def test_response_fields(speaker, soap):
    async def volume(request):
        return web.Response(text=ENVELOPE.format(
            '<u:GetVolumeResponse xmlns:u="urn:schemas-upnp-org:service:RenderingControl:1">'
            '<CurrentVolume>37</CurrentVolume></u:GetVolumeResponse>'), content_type="text/xml")

    host, port, seen = await speaker(volume, path=RENDERING_CONTROL.control_path)
    resp = await soap.call(host, port, RENDERING_CONTROL, "GetVolume",
                           {"InstanceID": "0", "Channel": "Master"})
    assert resp.findtext("CurrentVolume") == "37"
    assert seen[0]["soapaction"].endswith('RenderingControl:1#GetVolume"')


async def test_upnp_fault(speaker, soap):
    async def fault(request):
        return web.Response(status=500, text=FAULT, content_type="text/xml")

    host, port, _ = await speaker(fault)
    with pytest.raises(SOAPError) as exc:
        await soap.call(host, port, AV_TRANSPORT, "Next", {"InstanceID": "0"})
    assert exc.value.fault
    assert exc.value.status == 500
    assert exc.value.error_code == "701"
    assert exc.value.description == "Transition not available"


async def test_plain_http_error(speaker, soap):
    async def unavailable(request):
        return web.Response(status=503, text="")

    host, port, _ = await speaker(unavailable)
    with pytest.raises(SOAPError) as exc:
        await soap.call(host, port, AV_TRANSPORT, "Play", {"InstanceID": "0"})
    assert not exc.value.fault
    assert exc.value.status == 503


async def test_garbage_body(speaker, soap):
    async def garbage(request):
        return web.Response(text="<s:Envelope", content_type="text/xml")

    host, port, _ = await speaker(garbage)
    with pytest.raises(ProtocolError):
        await soap.call(host, port, AV_TRANSPORT, "Play", {"InstanceID": "0"})


async def test_connection_refused(soap):
    server = TestServer(web.Application())
    await server.start_server()
    url = server.make_url("/")
    await server.close()
    with pytest.raises(NetworkError):
        await soap.call(url.host, url.port, AV_TRANSPORT, "Play", {"InstanceID": "0"})
