import logging

from twisted.internet import defer
from twisted.internet.protocol import DatagramProtocol

from natdetector import stun
from natdetector.stun.message import Message, StunError


logger = logging.getLogger(__name__)


class StunUdpProtocol(DatagramProtocol):
    def __init__(self, reactor, interface='', port=0):
        """
        :param interface: local address to bind to, all interfaces by default
        :param port: UDP port to bind to, 0 for any free port
        """
        self.reactor = reactor
        self.interface = interface
        self.port = port

        self._handlers = {
            stun.MSG_STUN_BINDING_REQUEST:
                self._stun_binding_request,
            stun.MSG_STUN_BINDING_RESPONSE_SUCCESS:
                self._stun_binding_success,
            stun.MSG_STUN_BINDING_RESPONSE_ERROR:
                self._stun_binding_error,
            stun.MSG_STUN_SHARED_SECRET_REQUEST:
                self._stun_shared_secret_request,
            stun.MSG_STUN_SHARED_SECRET_RESPONSE_SUCCESS:
                self._stun_shared_secret_success,
            stun.MSG_STUN_SHARED_SECRET_RESPONSE_ERROR:
                self._stun_shared_secret_error,
            }

    def start(self):
        port = self.reactor.listenUDP(self.port, self, self.interface)
        return port.getHost().port

    def datagramReceived(self, datagram, addr):
        try:
            msg = Message.parse(datagram)
        except StunError:
            logger.exception("Failed to decode STUN from %s:%d:", *addr)
            logger.debug(datagram.hex())
        else:
            self._stun_received(msg, addr)

    def send(self, msg, addr):
        self.transport.write(msg.to_bytes(), addr)
        logger.info("%s Sent %s to %s:%d", self, msg.type_name, *addr)
        logger.debug(msg.format())

    def _stun_received(self, msg, addr):
        logger.info("%s Received %s from %s:%d", self, msg.type_name, *addr)
        logger.debug(msg.format())
        self._handlers[msg.msg_type](msg, addr)

    def _stun_unhandeled(self, msg, addr):
        logger.warning("%s Unhandeled message from %s:%d", self, *addr)

    def _stun_binding_request(self, msg, addr):
        self._stun_unhandeled(msg, addr)

    def _stun_binding_success(self, msg, addr):
        self._stun_unhandeled(msg, addr)

    def _stun_binding_error(self, msg, addr):
        self._stun_unhandeled(msg, addr)

    def _stun_shared_secret_request(self, msg, addr):
        self._stun_unhandeled(msg, addr)

    def _stun_shared_secret_success(self, msg, addr):
        self._stun_unhandeled(msg, addr)

    def _stun_shared_secret_error(self, msg, addr):
        self._stun_unhandeled(msg, addr)


class StunUdpClient(StunUdpProtocol):
    """Sends each request once and matches responses by transaction ID.
    Retransmission and time outs are left to the caller, who can cancel the
    returned transaction.
    """
    def __init__(self, reactor, interface='', port=0):
        StunUdpProtocol.__init__(self, reactor, interface, port)
        self._transactions = {}

    def bind(self, addr, rfc5780=False, change_request=None):
        """
        :param change_request: a :class:`StunChangeRequest` or None
        :see: http://tools.ietf.org/html/rfc5780#section-4.3
        """
        request = Message.request(stun.MSG_STUN_BINDING_REQUEST, rfc5780,
                                  change_request=change_request)
        return self.request(request, addr)

    def request(self, request, addr):
        """Send a STUN request
        :returns: a :class:`StunTransaction` firing with the response
        """
        transaction = StunTransaction(request, addr, self._transaction_cancelled)
        self._transactions[transaction.transaction_id] = transaction
        transaction.addBoth(self._transaction_completed, transaction)
        self.send(request, addr)
        return transaction

    def _transaction_cancelled(self, transaction):
        logger.info("%s Cancelled", transaction)

    def _transaction_completed(self, result, transaction):
        del self._transactions[transaction.transaction_id]
        return result

    def get_transaction(self, msg):
        return self._transactions.get(msg.transaction_id)

    def _stun_response(self, msg, addr):
        transaction = self.get_transaction(msg)
        if not transaction:
            logger.warning("%s No transaction %s for response from %s:%d",
                           self, msg.transaction_id.hex(), *addr)
        elif msg.is_error:
            transaction.fail(TransactionError(msg.error_code, msg))
        else:
            transaction.succeed(msg)

    _stun_binding_success = _stun_response
    _stun_binding_error = _stun_response
    _stun_shared_secret_success = _stun_response
    _stun_shared_secret_error = _stun_response


class TransactionError(Exception):
    pass


class StunTransaction(defer.Deferred):
    fail = defer.Deferred.errback
    succeed = defer.Deferred.callback

    def __init__(self, request, addr, canceller=None):
        defer.Deferred.__init__(self, canceller)
        self.transaction_id = request.transaction_id
        self.request = request
        self.addr = addr

    def __str__(self):
        return "StunTransaction({}, {}:{})".format(
            self.transaction_id.hex(), *self.addr)

    __repr__ = __str__
