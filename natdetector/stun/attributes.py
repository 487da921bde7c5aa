import logging
import struct

from natdetector import stun
from natdetector.stun.message import (
    attribute, Address, Attribute, MalformedMessage,
    StunChangeRequest, StunErrorCode)


__all__ = [
    'MappedAddress', 'ResponseAddress', 'ChangeRequest', 'SourceAddress',
    'ChangedAddress', 'Username', 'Password', 'MessageIntegrity',
    'ErrorCode', 'UnknownAttributes', 'ReflectedFrom', 'XorMappedAddress',
    'XorOnly', 'ServerName', 'XorFrag', 'XorRelayedAddress', 'OtherAddress',
    ]

logger = logging.getLogger(__name__)


@attribute
class MappedAddress(Address):
    """
    :see: http://tools.ietf.org/html/rfc3489#section-11.2.1
    """
    type = stun.ATTR_MAPPED_ADDRESS
    field = 'mapped_address'


@attribute
class ResponseAddress(Address):
    """
    :see: http://tools.ietf.org/html/rfc3489#section-11.2.2
    """
    type = stun.ATTR_RESPONSE_ADDRESS
    field = 'response_address'


@attribute
class ChangeRequest(Attribute):
    """
    :see: http://tools.ietf.org/html/rfc5780#section-7.2
    """
    type = stun.ATTR_CHANGE_REQUEST
    field = 'change_request'
    _struct = struct.Struct('>3xB')

    CHANGE_IP =     0b0100
    CHANGE_PORT =   0b0010

    @classmethod
    def decode(cls, data, offset, length):
        cls.check_bounds(data, offset, cls._struct.size)
        flags, = cls._struct.unpack_from(data, offset)
        change_request = StunChangeRequest(flags & cls.CHANGE_IP,
                                           flags & cls.CHANGE_PORT)
        return change_request, cls._struct.size

    @classmethod
    def encode(cls, msg, change_request):
        flags = (int(change_request.change_ip) << 2 |
                 int(change_request.change_port) << 1)
        return cls._struct.pack(flags)


@attribute
class SourceAddress(Address):
    """
    :see: http://tools.ietf.org/html/rfc3489#section-11.2.5
    """
    type = stun.ATTR_SOURCE_ADDRESS
    field = 'source_address'


@attribute
class ChangedAddress(Address):
    """
    :see: http://tools.ietf.org/html/rfc3489#section-11.2.3
    """
    type = stun.ATTR_CHANGED_ADDRESS
    field = 'changed_address'


@attribute
class Username(Attribute):
    type = stun.ATTR_USERNAME


@attribute
class Password(Attribute):
    type = stun.ATTR_PASSWORD


@attribute
class MessageIntegrity(Attribute):
    """Skipped, the HMAC is never verified
    :see: http://tools.ietf.org/html/rfc5389#section-15.4
    """
    type = stun.ATTR_MESSAGE_INTEGRITY


@attribute
class ErrorCode(Attribute):
    """
    :see: http://tools.ietf.org/html/rfc5389#section-15.6
    """
    type = stun.ATTR_ERROR_CODE
    field = 'error_code'
    _struct = struct.Struct('>2x2B')

    # Stands in for reason phrases that are not valid UTF-8
    UNKNOWN_REASON = u"Unknown"

    @classmethod
    def decode(cls, data, offset, length):
        if length < cls._struct.size:
            raise MalformedMessage(
                "ERROR-CODE length {} is too short".format(length))
        cls.check_bounds(data, offset, length)
        err_class, err_number = cls._struct.unpack_from(data, offset)
        err_class &= 0b111
        reason = bytes(data[offset + cls._struct.size:offset + length])
        try:
            reason = reason.decode('utf8')
        except UnicodeDecodeError:
            logger.warning("ERROR-CODE reason is not UTF-8: %s", reason.hex())
            reason = cls.UNKNOWN_REASON
        # Number bytes above 99 are kept as is, bypassing construction checks
        error_code = StunErrorCode._make((err_class * 100 + err_number, reason))
        return error_code, length

    @classmethod
    def encode(cls, msg, error_code):
        # Number byte is code % 100 rather than the low 8 bits of the code,
        # so 420 goes out as class 4 number 20
        value = cls._struct.pack(error_code.err_class, error_code.err_number)
        return value + error_code.reason.encode('utf8')


@attribute
class UnknownAttributes(Attribute):
    """
    :see: http://tools.ietf.org/html/rfc5389#section-15.9
    """
    type = stun.ATTR_UNKNOWN_ATTRIBUTES


@attribute
class ReflectedFrom(Address):
    """
    :see: http://tools.ietf.org/html/rfc3489#section-11.2.11
    """
    type = stun.ATTR_REFLECTED_FROM
    field = 'reflected_from'


@attribute
class XorMappedAddress(Address):
    """Xored with the fixed RFC 5389 magic cookie, whatever cookie the
    message carries
    :see: http://tools.ietf.org/html/rfc5389#section-15.2
    """
    type = stun.ATTR_XOR_MAPPED_ADDRESS
    field = 'xor_mapped_address'
    _xored = True


@attribute
class XorOnly(Attribute):
    type = stun.ATTR_XOR_ONLY


@attribute
class ServerName(Attribute):
    type = stun.ATTR_SERVER_NAME


@attribute
class XorFrag(Attribute):
    type = stun.ATTR_XOR_FRAG


@attribute
class XorRelayedAddress(Address):
    """Xored with the magic cookie field of the message itself
    """
    type = stun.ATTR_XOR_RELAYED_ADDRESS
    field = 'xor_relayed_address'
    _xored = True

    @classmethod
    def xor_key(cls, magic_cookie):
        return struct.pack('>L', magic_cookie)


@attribute
class OtherAddress(Address):
    """
    :see: http://tools.ietf.org/html/rfc5780#section-7.4
    """
    type = stun.ATTR_OTHER_ADDRESS
    field = 'other_address'
