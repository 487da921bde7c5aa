import logging
import os
import socket
import struct
from collections import namedtuple

from natdetector import stun


logger = logging.getLogger(__name__)


class StunError(Exception):
    """Base class for errors raised while decoding STUN messages
    """


class MalformedMessage(StunError):
    pass


class UnknownMessageType(StunError):
    def __init__(self, msg_type):
        StunError.__init__(self, "Unknown message type {:#06x}".format(msg_type))
        self.msg_type = msg_type


class UnknownAttributeType(StunError):
    def __init__(self, attr_type):
        StunError.__init__(self, "Unknown attribute type {:#06x}".format(attr_type))
        self.attr_type = attr_type


class SocketAddress(namedtuple('SocketAddress', 'ip port')):
    """IPv4 transport address carried by the address attributes
    """
    __slots__ = ()

    def __new__(cls, ip, port):
        try:
            socket.inet_pton(socket.AF_INET, ip)
        except (OSError, TypeError):
            raise ValueError("Not an IPv4 address: {!r}".format(ip))
        if not 0 <= port <= 0xffff:
            raise ValueError("Port out of range: {!r}".format(port))
        return super(SocketAddress, cls).__new__(cls, ip, port)

    def __str__(self):
        return "{}:{}".format(self.ip, self.port)


class StunChangeRequest(namedtuple('StunChangeRequest', 'change_ip change_port')):
    """Flags asking the server to respond from another IP and/or port
    :see: http://tools.ietf.org/html/rfc5780#section-7.2
    """
    __slots__ = ()

    def __new__(cls, change_ip=False, change_port=False):
        return super(StunChangeRequest, cls).__new__(
            cls, bool(change_ip), bool(change_port))


class StunErrorCode(namedtuple('StunErrorCode', 'code reason')):
    """Numeric error code (class * 100 + number) and its reason phrase
    :see: http://tools.ietf.org/html/rfc5389#section-15.6

    The class is 3 bits wide on the wire, so new codes stop at 799. Decoded
    codes are built with :meth:`_make` and may reach 955 (class 7 with a
    number byte above 99); those encode back with class 7.
    """
    __slots__ = ()

    # 16 bit attribute length, minus the class/number word
    _MAX_REASON = 0xffff - 4
    _MAX_CLASS = 0b111

    def __new__(cls, code, reason=u""):
        if not 0 <= code < (cls._MAX_CLASS + 1) * 100:
            raise ValueError("Error code out of range: {!r}".format(code))
        if len(reason.encode('utf8')) > cls._MAX_REASON:
            raise ValueError("Reason phrase too long")
        return super(StunErrorCode, cls).__new__(cls, code, reason)

    @classmethod
    def from_tuple(cls, err_class, err_number, reason):
        """Build from one of the ``stun.ERR_*`` tuples"""
        return cls(err_class * 100 + err_number, reason)

    @property
    def err_class(self):
        return min(self.code // 100, self._MAX_CLASS)

    @property
    def err_number(self):
        return self.code - self.err_class * 100


class Message(object):
    """STUN message structure
    :see: http://tools.ietf.org/html/rfc5389#section-6

    A message is built once, either as a fresh request or by :meth:`parse`,
    and is not modified afterwards.
    """

    _struct = struct.Struct('>2HL12s')
    _ATTR_TYPE_CLS = {}

    _FIELD_TYPES = {
        'mapped_address':       SocketAddress,
        'response_address':     SocketAddress,
        'source_address':       SocketAddress,
        'changed_address':      SocketAddress,
        'change_request':       StunChangeRequest,
        'error_code':           StunErrorCode,
        'response_origin':      SocketAddress,
        'reflected_from':       SocketAddress,
        'other_address':        SocketAddress,
        'xor_mapped_address':   SocketAddress,
        'xor_relayed_address':  SocketAddress,
        }

    # Only the first of these present on a message gets encoded
    _ENCODE_PRIORITY = (
        ('mapped_address',   stun.ATTR_MAPPED_ADDRESS),
        ('response_address', stun.ATTR_RESPONSE_ADDRESS),
        ('change_request',   stun.ATTR_CHANGE_REQUEST),
        ('source_address',   stun.ATTR_SOURCE_ADDRESS),
        ('changed_address',  stun.ATTR_CHANGED_ADDRESS),
        ('error_code',       stun.ATTR_ERROR_CODE),
        )

    _TRANSACTION_ID_SIZE = 12

    def __init__(self, msg_type, magic_cookie=stun.NO_COOKIE,
                 transaction_id=None, **attributes):
        """
        :param msg_type: one of the six ``stun.MSG_STUN_*`` message types
        :param magic_cookie: ``stun.MAGIC_COOKIE`` or 0 for RFC 3489
        :param transaction_id: 12 bytes, random when omitted
        :param attributes: values for the optional attribute fields
        """
        if msg_type not in stun.MSG_TYPE_NAMES:
            raise ValueError("Unknown message type {!r}".format(msg_type))
        if not 0 <= magic_cookie <= 0xffffffff:
            raise ValueError("Magic cookie out of range: {!r}".format(magic_cookie))
        if transaction_id is None:
            transaction_id = os.urandom(self._TRANSACTION_ID_SIZE)
        transaction_id = bytes(transaction_id)
        if len(transaction_id) != self._TRANSACTION_ID_SIZE:
            raise ValueError("Transaction ID must be {} bytes".format(
                self._TRANSACTION_ID_SIZE))
        self.msg_type = msg_type
        self.magic_cookie = magic_cookie
        self.transaction_id = transaction_id

        for field, value_type in self._FIELD_TYPES.items():
            value = attributes.pop(field, None)
            if value is not None and not isinstance(value, value_type):
                value = value_type(*value)
            setattr(self, field, value)
        if attributes:
            raise TypeError("Unknown attribute fields: {}".format(
                ", ".join(sorted(attributes))))
        object.__setattr__(self, "_frozen", True)

    def __setattr__(self, name, value):
        if getattr(self, "_frozen", False):
            raise AttributeError("{} is read-only".format(type(self).__name__))
        object.__setattr__(self, name, value)

    @classmethod
    def request(cls, msg_type=stun.MSG_STUN_BINDING_REQUEST, rfc5780=False,
                **attributes):
        """Create a request with a fresh transaction ID
        :param rfc5780: set the RFC 5389 magic cookie instead of zero
        """
        magic_cookie = stun.MAGIC_COOKIE if rfc5780 else stun.NO_COOKIE
        return cls(msg_type, magic_cookie, **attributes)

    def create_response(self, msg_type, **attributes):
        return type(self)(msg_type, self.magic_cookie, self.transaction_id,
                          **attributes)

    @property
    def msg_method(self):
        return self.msg_type & 0x3eef

    @property
    def msg_class(self):
        return self.msg_type >> 4 & 0x11

    @property
    def is_request(self):
        return self.msg_class == stun.CLASS_REQUEST

    @property
    def is_response(self):
        return self.msg_class in (stun.CLASS_RESPONSE_SUCCESS,
                                  stun.CLASS_RESPONSE_ERROR)

    @property
    def is_error(self):
        return self.msg_class == stun.CLASS_RESPONSE_ERROR

    @classmethod
    def parse(cls, data):
        """Decode a STUN message from a received datagram
        :see: http://tools.ietf.org/html/rfc5389#section-7.3
        :raises MalformedMessage: data is truncated
        :raises UnknownMessageType: type is not one of the six known types
        :raises UnknownAttributeType: an attribute outside the known set
        """
        data = memoryview(bytes(data))
        if len(data) < cls._struct.size:
            raise MalformedMessage(
                "Message shorter than header ({} bytes)".format(len(data)))
        msg_type, msg_length, magic_cookie, transaction_id = \
            cls._struct.unpack_from(data)
        if msg_type not in stun.MSG_TYPE_NAMES:
            raise UnknownMessageType(msg_type)

        attributes = {}
        offset = cls._struct.size
        while offset - cls._struct.size < msg_length:
            Attribute.check_bounds(data, offset, Attribute.struct.size)
            attr_type, attr_length = Attribute.struct.unpack_from(data, offset)
            offset += Attribute.struct.size
            attr_cls = cls.get_attr_cls(attr_type)
            value, size = attr_cls.decode(data, offset, attr_length)
            if attr_cls.field:
                attributes[attr_cls.field] = value
            else:
                logger.debug("Skipped %s (%d bytes)", attr_cls.__name__, size)
            offset += size

        return cls(msg_type, magic_cookie, transaction_id, **attributes)

    def to_bytes(self):
        """Encode the header and the highest priority attribute present
        """
        buf = bytearray(self._struct.pack(self.msg_type & 0x3fff, 0,
                                          self.magic_cookie,
                                          self.transaction_id))
        for field, attr_type in self._ENCODE_PRIORITY:
            value = getattr(self, field)
            if value is not None:
                attr_cls = self._ATTR_TYPE_CLS[attr_type]
                data = attr_cls.encode(self, value)
                buf.extend(Attribute.struct.pack(attr_cls.type, len(data)))
                buf.extend(data)
                break
        struct.pack_into('>H', buf, 2, len(buf) - self._struct.size)
        return bytes(buf)

    @classmethod
    def get_attr_cls(cls, attr_type):
        attr_cls = cls._ATTR_TYPE_CLS.get(attr_type)
        if not attr_cls:
            raise UnknownAttributeType(attr_type)
        return attr_cls

    @classmethod
    def add_attr_cls(cls, attr_cls):
        """Decorator to add a Stun Attribute as an recognized attribute type
        """
        assert not cls._ATTR_TYPE_CLS.get(attr_cls.type, False), \
            "Duplicate definition for {:#06x}".format(attr_cls.type)
        assert attr_cls.field is None or attr_cls.field in cls._FIELD_TYPES, \
            "Unknown message field {!r}".format(attr_cls.field)
        cls._ATTR_TYPE_CLS[attr_cls.type] = attr_cls
        return attr_cls

    @property
    def type_name(self):
        return stun.MSG_TYPE_NAMES[self.msg_type]

    @property
    def attributes(self):
        """Present attribute fields as a ``{field: value}`` dict"""
        return dict((field, getattr(self, field))
                    for field in sorted(self._FIELD_TYPES)
                    if getattr(self, field) is not None)

    def _key(self):
        return (self.msg_type, self.magic_cookie, self.transaction_id,
                tuple(sorted(self.attributes.items())))

    def __eq__(self, other):
        if not isinstance(other, Message):
            return NotImplemented
        return self._key() == other._key()

    __hash__ = None

    def __repr__(self):
        return ("{}(type={}, magic_cookie={:#010x}, transaction_id={}, "
                "attributes={})".format(
                    type(self).__name__, self.type_name, self.magic_cookie,
                    self.transaction_id.hex(), self.attributes))

    def format(self):
        string = '\n'.join([
            "{0.__class__.__name__}",
            "    type:           {0.type_name} ({0.msg_type:#06x})",
            "    magic-cookie:   {0.magic_cookie:#010x}",
            "    transaction-id: {1}",
            "    attributes:", ""
            ]).format(self, self.transaction_id.hex())
        string += '\n'.join(["    \t{}: {}".format(field, value)
                             for field, value in self.attributes.items()])
        return string


class Attribute(object):
    """STUN message attribute codec
    :see: http://tools.ietf.org/html/rfc5389#section-15

    :cvar type: attribute type code
    :cvar field: the :class:`Message` field the decoded value goes to, or
        None when the value is skipped
    """
    struct = struct.Struct('>2H')
    type = None
    field = None

    @staticmethod
    def check_bounds(data, offset, size):
        if offset + size > len(data):
            raise MalformedMessage(
                "Read of {} bytes at offset {} past end of {} byte message"
                .format(size, offset, len(data)))

    @classmethod
    def decode(cls, data, offset, length):
        """
        :returns: (value, number of bytes to advance past the value)
        """
        cls.check_bounds(data, offset, length)
        return None, length

    @classmethod
    def encode(cls, msg, value):
        raise NotImplementedError(
            "{} can not be encoded".format(cls.__name__))


class Address(Attribute):
    """Base class for all the addess STUN attributes
    :cvar _xored: Wether or not the port and address field are xored

    Only IPv4 is supported. The family byte is written but never checked.
    """
    _struct = struct.Struct('>xBH4s')

    FAMILY_IPv4 = 0x01
    FAMILY_IPv6 = 0x02

    _xored = False

    @classmethod
    def xor_key(cls, magic_cookie):
        """4 bytes the port and address are xored with
        """
        return struct.pack('>L', stun.MAGIC_COOKIE)

    @classmethod
    def _xor(cls, port, packed_ip, magic_cookie):
        magic = bytearray(cls.xor_key(magic_cookie))
        port = port ^ (magic[0] << 8 | magic[1])
        packed_ip = bytes(bytearray(a ^ b for a, b in zip(bytearray(packed_ip), magic)))
        return port, packed_ip

    @classmethod
    def decode(cls, data, offset, length):
        cls.check_bounds(data, offset, cls._struct.size)
        family, port, packed_ip = cls._struct.unpack_from(data, offset)
        if cls._xored:
            magic_cookie, = struct.unpack_from('>L', data, 4)
            port, packed_ip = cls._xor(port, packed_ip, magic_cookie)
        address = socket.inet_ntop(socket.AF_INET, packed_ip)
        return SocketAddress(address, port), cls._struct.size

    @classmethod
    def encode(cls, msg, address):
        port = address.port
        packed_ip = socket.inet_pton(socket.AF_INET, address.ip)
        if cls._xored:
            port, packed_ip = cls._xor(port, packed_ip, msg.magic_cookie)
        return cls._struct.pack(cls.FAMILY_IPv4, port, packed_ip)


# Decorator shortcut for adding known attribute classes
attribute = Message.add_attr_cls

parse = Message.parse
