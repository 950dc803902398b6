"""soanm — staged sponsor/enrollee provisioning over a one-time code.

A sponsor host ships a bundle of enrollee programs over a magic-wormhole
channel, then both sides run matched stage programs in lockstep, piping each
stage's stdout to the counterpart.

Quickstart::

    from soanm.channel import connect_without_code
    from soanm.sponsor import StageRunner

    code, pending = await connect_without_code(16)
    print(code)
    channel = await pending.wait()
    await StageRunner(channel, base_dir="provision").run()
"""

__version__ = "0.2.0"
