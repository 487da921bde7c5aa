import unittest
from twisted.internet import defer
from twisted.internet.address import IPv4Address
from natdetector import stun
from natdetector.stun import Message, StunChangeRequest, StunErrorCode
from natdetector.stun.protocol import (
    StunUdpProtocol, StunUdpClient, TransactionError)


class FakeDatagramTransport(object):
    def __init__(self):
        self.written = []

    def write(self, data, addr):
        self.written.append((data, addr))


class FakeListeningPort(object):
    def __init__(self, host):
        self.host = host

    def getHost(self):
        return self.host


class FakeUdpReactor(object):
    def __init__(self):
        self.udp_servers = []

    def listenUDP(self, port, protocol, interface=''):
        self.udp_servers.append((port, protocol, interface))
        return FakeListeningPort(IPv4Address('UDP', interface or '0.0.0.0', port or 41000))


class StunUdpProtocolTest(unittest.TestCase):
    def setUp(self):
        self.reactor = FakeUdpReactor()
        self.protocol = StunUdpProtocol(self.reactor, '127.0.0.1', 3478)
        self.protocol.transport = FakeDatagramTransport()
        self.addr = ('192.0.2.10', 50000)

    def test_start(self):
        port = self.protocol.start()
        self.assertEqual(port, 3478)
        (port, protocol, interface), = self.reactor.udp_servers
        self.assertEqual(port, 3478)
        self.assertIs(protocol, self.protocol)
        self.assertEqual(interface, '127.0.0.1')

    def test_start_any_port(self):
        protocol = StunUdpProtocol(self.reactor)
        self.assertEqual(protocol.start(), 41000)
        (port, _, interface), = self.reactor.udp_servers
        self.assertEqual(port, 0)
        self.assertEqual(interface, '')

    def test_garbage_dropped(self):
        with self.assertLogs('natdetector.stun.protocol', 'ERROR'):
            self.protocol.datagramReceived(b'\x16\xfe\xfd\x00', self.addr)
        with self.assertLogs('natdetector.stun.protocol', 'ERROR'):
            self.protocol.datagramReceived(bytes(20), self.addr)

    def test_unhandled_request(self):
        request = Message.request()
        with self.assertLogs('natdetector.stun.protocol', 'WARNING'):
            self.protocol.datagramReceived(request.to_bytes(), self.addr)

    def test_send(self):
        request = Message.request(change_request=StunChangeRequest(True, False))
        self.protocol.send(request, self.addr)
        (data, addr), = self.protocol.transport.written
        self.assertEqual(data, request.to_bytes())
        self.assertEqual(addr, self.addr)


class StunUdpClientTest(unittest.TestCase):
    def setUp(self):
        self.client = StunUdpClient(FakeUdpReactor())
        self.client.transport = FakeDatagramTransport()
        self.server_addr = ('198.51.100.1', 3478)

    def test_bind(self):
        transaction = self.client.bind(
            self.server_addr, rfc5780=True,
            change_request=StunChangeRequest(True, True))
        (data, addr), = self.client.transport.written
        self.assertEqual(addr, self.server_addr)
        request = Message.parse(data)
        self.assertEqual(request.msg_type, stun.MSG_STUN_BINDING_REQUEST)
        self.assertEqual(request.magic_cookie, stun.MAGIC_COOKIE)
        self.assertEqual(request.change_request, StunChangeRequest(True, True))
        self.assertEqual(request.transaction_id, transaction.transaction_id)
        self.assertIs(self.client.get_transaction(request), transaction)

    def test_success_response(self):
        transaction = self.client.bind(self.server_addr)
        results = []
        transaction.addCallback(results.append)

        response = transaction.request.create_response(
            stun.MSG_STUN_BINDING_RESPONSE_SUCCESS,
            mapped_address=('203.0.113.5', 40000))
        self.client.datagramReceived(response.to_bytes(), self.server_addr)

        self.assertEqual(results, [response])
        self.assertEqual(results[0].mapped_address, ('203.0.113.5', 40000))
        self.assertIsNone(self.client.get_transaction(response))

    def test_error_response(self):
        transaction = self.client.bind(self.server_addr)
        failures = []
        transaction.addErrback(failures.append)

        error_code = StunErrorCode.from_tuple(*stun.ERR_BAD_REQUEST)
        response = transaction.request.create_response(
            stun.MSG_STUN_BINDING_RESPONSE_ERROR, error_code=error_code)
        self.client.datagramReceived(response.to_bytes(), self.server_addr)

        failure, = failures
        self.assertTrue(failure.check(TransactionError))
        self.assertEqual(failure.value.args[0], error_code)
        self.assertIsNone(self.client.get_transaction(response))

    def test_unknown_transaction(self):
        response = Message(stun.MSG_STUN_BINDING_RESPONSE_SUCCESS,
                           mapped_address=('203.0.113.5', 40000))
        with self.assertLogs('natdetector.stun.protocol', 'WARNING'):
            self.client.datagramReceived(response.to_bytes(), self.server_addr)

    def test_cancel(self):
        transaction = self.client.bind(self.server_addr)
        failures = []
        transaction.addErrback(failures.append)
        transaction.cancel()
        failure, = failures
        self.assertTrue(failure.check(defer.CancelledError))
        self.assertIsNone(self.client.get_transaction(transaction.request))


if __name__ == "__main__":
    unittest.main()
