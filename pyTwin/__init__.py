"""**Sending commands to AWS IOT devices and keeping the devices in step with their shadows.**

.. moduleauthor:: dhrone
.. module:: pyTwin

pyTwin covers both ends of a command sent to an Amazon AWS IOT-Core device.  In IOT-Core the state of a device is held in its device Shadow, a JSON document with desired, reported and delta sections.

On the cloud side, a :obj:`CommandService` accepts a command from a user, checks it against the rules for the device's model (a :obj:`CommandStrategy`), stores it, merges it into the desired state of the device's shadow and announces it on the device's command topic.  Commands for the simulated fan controller are hyphen separated (e.g. `set-fan-power`) and are checked against a YAML command schema before being folded into a shadow patch.

On the device side, a :obj:`Device` listens for the delta messages IOT-Core sends when desired and reported state differ.  It merges every changed leaf into its own state, reports the result and clears the applied properties from the desired state.  :obj:`SimController` and :obj:`HVAC` are simulated devices built this way.  The fan controller ramps fan speeds toward their commanded values and injects random faults.

"""

from pyTwin.Command import CommandService
from pyTwin.Controller import HVAC, PeriodicSimulator, SimController, deviceClass
from pyTwin.Errors import CommandError, SchemaError
from pyTwin.Reconciler import Reconciler
from pyTwin.Schema import CommandSchema, CommandValidator
from pyTwin.Strategy import CommandStrategy, commandStrategy
from pyTwin.Thing import Device
from pyTwin.Transform import ShadowTransform
