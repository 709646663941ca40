"""Services: the static balance table and the player actions run against live games.

Import submodules directly (`services.game_config`, `services.game_actions`);
`game_actions` depends on the live engine, which itself imports `game_config`.
"""
