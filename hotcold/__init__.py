# flake8: noqa

from .address import *
from .anchor import *
from .backend import *
from .certificate import *
from .drep import *
from .exception import *
from .governance import *
from .hash import *
from .network import *
from .plutus import *
from .rules import *
from .serialization import *
from .transaction import *
from .txbuilder import *
from .utils import *
from .witness import *
