import pytest

from pyTwin.Config import loadConfig
from pyTwin.Controller import FAULTS, HVAC, NO_FAULT, PeriodicSimulator, SimController, controllerState, deviceClass
from pyTwin.Errors import UnknownModel

from tests import simulator

THINGNAME = 'fanController-1'


def fan(commanded=10.0, actual=10.0, activeFault=NO_FAULT, resetFaults=False):
    return { 'commandedSpeedPercent': commanded, 'actualSpeedPercent': actual, 'activeFault': activeFault, 'resetFaults': resetFaults }


@pytest.fixture
def clock():
    return simulator.clockSim(100.0)


def test_speed_ramps_toward_commanded(clock):
    sim = PeriodicSimulator(5.0, 0, clock=clock)
    f = fan(commanded=50.0)
    assert not sim.adjustSpeed('1', f) # first cycle only starts the clock
    clock.advance(2)
    assert sim.adjustSpeed('1', f)
    assert f['actualSpeedPercent'] == 20.0
    clock.advance(3)
    sim.adjustSpeed('1', f)
    assert f['actualSpeedPercent'] == 35.0


def test_speed_never_overshoots(clock):
    sim = PeriodicSimulator(5.0, 0, clock=clock)
    f = fan(commanded=50.0, actual=45.0)
    sim.adjustSpeed('1', f)
    clock.advance(10)
    sim.adjustSpeed('1', f)
    assert f['actualSpeedPercent'] == 50.0
    clock.advance(10)
    assert not sim.adjustSpeed('1', f)


def test_speed_ramps_down(clock):
    sim = PeriodicSimulator(5.0, 0, clock=clock)
    f = fan(commanded='0', actual=30.0)
    sim.adjustSpeed('1', f)
    clock.advance(4)
    sim.adjustSpeed('1', f)
    assert f['actualSpeedPercent'] == 10.0
    clock.advance(4)
    sim.adjustSpeed('1', f)
    assert f['actualSpeedPercent'] == 0.0


def test_speed_is_tracked_per_fan(clock):
    sim = PeriodicSimulator(5.0, 0, clock=clock)
    first, second = fan(commanded=60.0), fan(commanded=60.0)
    sim.adjustSpeed('1', first)
    clock.advance(2)
    sim.adjustSpeed('1', first)
    sim.adjustSpeed('2', second)
    assert first['actualSpeedPercent'] == 20.0
    assert second['actualSpeedPercent'] == 10.0


def test_unusable_speed_is_skipped(clock):
    sim = PeriodicSimulator(5.0, 0, clock=clock)
    assert not sim.adjustSpeed('1', { 'commandedSpeedPercent': 'fast', 'actualSpeedPercent': 10.0 })
    assert not sim.adjustSpeed('2', {})


def test_fault_injection(clock):
    sim = PeriodicSimulator(5.0, 0.01, clock=clock, rng=simulator.randomSim([0.5, 0.005]))
    f = fan()
    assert sim.injectFault('1', f) is None
    assert sim.injectFault('1', f) == FAULTS[1]
    assert f['activeFault'] == FAULTS[1]


def test_faulted_fan_keeps_its_fault(clock):
    rng = simulator.randomSim([0.0])
    sim = PeriodicSimulator(5.0, 1.0, clock=clock, rng=rng)
    f = fan(activeFault='Motor Stall')
    assert sim.injectFault('1', f) is None
    assert f['activeFault'] == 'Motor Stall'
    assert rng.values == [0.0]


def test_zero_probability_never_faults(clock):
    sim = PeriodicSimulator(5.0, 0, clock=clock, rng=simulator.randomSim(default=0.0))
    f = fan()
    assert sim.injectFault('1', f) is None


def test_reset_faults(clock):
    sim = PeriodicSimulator(5.0, 0, clock=clock)
    f = fan(activeFault='Over Voltage', resetFaults=True)
    assert sim.resetFaults('1', f) == 'Over Voltage'
    assert f['activeFault'] == NO_FAULT
    assert f['resetFaults'] is False


def test_reset_without_fault_clears_flag(clock):
    sim = PeriodicSimulator(5.0, 0, clock=clock)
    f = fan(resetFaults=True)
    assert sim.resetFaults('1', f) is None
    assert f['resetFaults'] is False


def test_step_reports_events(clock):
    sim = PeriodicSimulator(5.0, 0.5, clock=clock, rng=simulator.randomSim([0.1, 0.9]))
    fans = { '1': fan(), '2': fan(activeFault='Motor Stall', resetFaults=True), '3': fan() }
    events = sim.step(fans)
    assert events == [
        ('fault', 'Fan 1 faulted', FAULTS[1]),
        ('faultCleared', 'Fan 2 fault cleared', 'Motor Stall'),
    ]
    assert fans['1']['activeFault'] == FAULTS[1]
    assert fans['2']['activeFault'] == NO_FAULT
    assert fans['3']['activeFault'] == NO_FAULT


def test_controller_state():
    state = controllerState()
    assert sorted(state['fan'], key=int) == [ str(a) for a in range(1, 9) ]
    assert state['fan']['3']['fanType'] == 'Powerfoil X'
    assert state['fan']['3']['activeFault'] == NO_FAULT
    assert state['instanceNumber'] == '3FFFFF'
    assert state['autoIdealTemperature'] == 23.3


@pytest.fixture
def client():
    return simulator.shadowClientSim()


@pytest.fixture
def controller(client, clock):
    sim = PeriodicSimulator(5.0, 0.01, clock=clock, rng=simulator.randomSim())
    return SimController(thingName=THINGNAME, simulator=sim, config=loadConfig(environ={}), shadowClient=client)


def test_controller_applies_fan_delta(controller, client):
    controller.onDelta({ 'fan': { '5': { 'commandedSpeedPercent': 60 } } })
    update = client.handler.updates[-1]
    assert update['state']['reported']['fan']['5']['commandedSpeedPercent'] == 60
    assert update['state']['reported']['fan']['5']['fanType'] == 'Powerfoil X'
    assert update['state']['desired'] == { 'fan': { '5': { 'commandedSpeedPercent': None } } }


def test_controller_ramps_fans_before_reporting(controller, client, clock):
    controller.onDelta({ 'fan': { '5': { 'commandedSpeedPercent': 60 } } })
    clock.advance(4)
    controller.reportState()
    reported = client.handler.updates[-1]['state']['reported']
    assert reported['fan']['5']['actualSpeedPercent'] == 30.0
    assert reported['fan']['4']['actualSpeedPercent'] == 10.0


def test_controller_reset_faults_publishes_event(controller, client):
    controller.reconciler.state['fan']['2']['activeFault'] = 'Over Current'
    controller.onDelta({ 'fan': { '2': { 'resetFaults': True } } })

    reported = client.handler.updates[-1]['state']['reported']
    assert reported['fan']['2']['activeFault'] == NO_FAULT
    assert reported['fan']['2']['resetFaults'] is False
    events = client.connection.messages(controller.eventTopic)
    assert [ (e['type'], e['details']['value']) for e in events ] == [ ('faultCleared', 'Over Current') ]


def test_controller_telemetry(controller, client):
    controller.handle({ 'action': 'TELEMETRY' })
    message = client.connection.messages(controller.telemetryTopic)[0]
    assert message['deviceId'] == THINGNAME
    assert message['fan']['1']['commandedSpeedPercent'] == 10.0
    assert 'timestamp' in message


@pytest.fixture
def hvac(client):
    return HVAC(thingName='hvac-1', rng=simulator.randomSim(default=0.9), config=loadConfig(environ={}), shadowClient=client)


def test_hvac_applies_known_properties(hvac, client):
    hvac.onDelta({ 'powerStatus': 'HEAT', 'targetTemperature': 75, 'actualTemperature': 60 })

    update = client.handler.updates[-1]
    assert update['state']['reported'] == { 'powerStatus': 'HEAT', 'actualTemperature': 71.5, 'targetTemperature': 75.0 }
    assert update['state']['desired'] == { 'powerStatus': None, 'targetTemperature': None, 'actualTemperature': None }
    events = client.connection.messages(hvac.eventTopic)
    assert [ (e['type'], e['details']['value']) for e in events ] == [ ('info', 'HEAT'), ('info', 75.0) ]


def test_hvac_rejects_unknown_mode(hvac, client):
    hvac.onDelta({ 'powerStatus': 'TURBO' })
    assert hvac.reconciler.state['powerStatus'] == 'OFF'
    assert not hvac.hasChanged
    assert client.connection.messages(hvac.eventTopic)[0]['type'] == 'diagnostic'


def test_hvac_temperature_walk(hvac, client):
    hvac.onDelta({ 'powerStatus': 'HEAT' })
    hvac.run()
    assert hvac.reconciler.state['actualTemperature'] == 72.0
    hvac.onDelta({ 'powerStatus': 'AC' })
    hvac.run()
    hvac.run()
    assert hvac.reconciler.state['actualTemperature'] == 71.0
    hvac.onDelta({ 'powerStatus': 'OFF' })
    hvac.run()
    assert hvac.reconciler.state['actualTemperature'] == 71.5

    telemetry = client.connection.messages(hvac.telemetryTopic)
    assert [ m['actualTemperature'] for m in telemetry ] == [ 72.0, 71.5, 71.0, 71.5 ]


@pytest.mark.parametrize('temperature, expected', [
    (71.5, None),
    (77.0, ('warning', 'Temperature is slightly exceeding upper threshold')),
    (82.0, ('error', 'Temperature is exceeding upper threshold')),
    (66.0, ('warning', 'Temperature is slightly dropping under the threshold')),
    (61.0, ('error', 'Temperature is dropping under the threshold')),
])
def test_hvac_threshold_events(hvac, temperature, expected):
    assert hvac.thresholdEvent(temperature, 71.5) == expected


def test_hvac_run_publishes_threshold_event(hvac, client):
    hvac.reconciler.state['actualTemperature'] = 82.0
    hvac.run()
    events = client.connection.messages(hvac.eventTopic)
    assert events[0]['type'] == 'error'


def test_device_class():
    assert deviceClass('sim-controller') is SimController
    assert deviceClass('test-model') is HVAC
    with pytest.raises(UnknownModel):
        deviceClass('toaster')


def test_hvac_bad_delta_leaves_state_untouched(hvac, client):
    hvac.onDelta({ 'powerStatus': 'HEAT', 'targetTemperature': 'warm' })
    assert hvac.reconciler.state == { 'powerStatus': 'OFF', 'actualTemperature': 71.5, 'targetTemperature': 71.5 }
    assert not hvac.hasChanged
    assert client.handler.updates == []
    assert [ e['type'] for e in client.connection.messages(hvac.eventTopic) ] == [ 'diagnostic' ]
