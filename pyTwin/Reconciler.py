# -*- coding: utf-8 -*-
from threading import RLock
import copy
import logging


def getPaths(root):
    ''' Returns the path (`list` of keys) to every leaf of `root`.

    Anything other than a non-empty `dict` is a leaf, including `None`.  Empty dicts contribute no path.

    .. code-block:: python

        getPaths({'a': 1, 'b': '2', 'c': None})       # => [['a'], ['b'], ['c']]
        getPaths({'a': {'b': {'c': 1}}, 'd': {}})     # => [['a', 'b', 'c']]

    '''
    paths = []
    # Children are pushed in reverse so that paths come out in document order
    stack = [ ([key], root[key]) for key in reversed(list(root)) ]
    while stack:
        path, value = stack.pop()
        if isinstance(value, dict):
            stack.extend((path + [key], value[key]) for key in reversed(list(value)))
        else:
            paths.append(path)
    return paths


def getPath(tree, path):
    node = tree
    for key in path:
        node = node[key]
    return node


def setPath(tree, path, value):
    ''' Write `value` at `path`, creating missing levels.  Existing sibling values are kept. '''
    node = tree
    for key in path[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            child = {}
            node[key] = child
        node = child
    node[path[-1]] = value


def echoPatch(paths):
    ''' A patch holding `None` at every path.  Published as desired state it clears the delta once reported state catches up. '''
    patch = {}
    for path in paths:
        setPath(patch, path, None)
    return patch


class Reconciler(object):
    ''' Applies shadow deltas to the state held by a device.

    Args:
        state (`dict`): The device state.  The reconciler takes ownership of it.

    '''
    _logger = logging.getLogger(__name__)

    def __init__(self, state):
        self._state = state
        self._lock = RLock()
        self.changedPaths = []

    @property
    def lock(self):
        ''' Held while the state is read or written '''
        return self._lock

    @property
    def state(self):
        ''' The live state.  Hold `lock` while using it. '''
        return self._state

    def snapshot(self):
        with self._lock:
            return copy.deepcopy(self._state)

    def apply(self, delta):
        ''' Merge every leaf of `delta` into the state

        Args:
            delta (`dict`): The `state` section of a shadow delta message

        Returns:
            `True` if anything was applied

        '''
        paths = getPaths(delta)
        with self._lock:
            self.changedPaths = paths
            if not paths:
                return False

            self._logger.info('Applying changes to: {0}'.format(['.'.join(str(k) for k in p) for p in paths]))
            for path in paths:
                setPath(self._state, path, copy.deepcopy(getPath(delta, path)))
        return True

    def restoreChanged(self, paths):
        ''' Mark `paths` as changed again so that the next report echoes them '''
        with self._lock:
            for path in paths:
                if path not in self.changedPaths:
                    self.changedPaths.append(path)

    def desiredState(self):
        ''' The echo patch for the paths changed by the last `apply` '''
        with self._lock:
            return echoPatch(self.changedPaths)
