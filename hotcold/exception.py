class HotColdException(Exception):
    pass


class DecodingException(HotColdException):
    pass


class InvalidArgumentException(HotColdException):
    pass


class InvalidDataException(HotColdException):
    pass


class SerializeException(HotColdException):
    pass


class DeserializeException(HotColdException):
    pass


class InvalidTransactionException(HotColdException):
    pass


class ResolutionException(HotColdException):
    """A UTxO or a minting transaction could not be found on chain."""


class InsufficientFundsException(HotColdException):
    pass


class ValueOverflowException(HotColdException):
    pass


class TransactionBuilderException(HotColdException):
    pass


class TransactionFailedException(HotColdException):
    pass


class AnchorFetchException(HotColdException):
    pass
