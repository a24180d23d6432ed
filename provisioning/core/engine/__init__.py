"""
Engine — phase pipeline, transactional session and the engine coordinator.

Import from the submodules:

    from provisioning.core.engine.engine import Engine
    from provisioning.core.engine.phases import default_phase_set
"""
