class Stateful:
    """
    Objects that expose a runtime state snapshot and a persisted config.

    `state_dict` covers mutable runtime state, `get_config` covers what is
    needed to rebuild the object.
    """
    def state_dict(self):
        return {}

    def load_state_dict(self, state):
        pass

    def get_config(self):
        return {}

    @classmethod
    def from_config(cls, cfg):
        return cls(**cfg)
