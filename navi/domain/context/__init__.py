# This module assembles what the companion agent sees about the user

# +---------------------+
# |   Long-term memory  |   (Persistent, compacted, bounded)
# |---------------------|
# | Goals, preferences  |
# | Identity, struggles |
# | Session history     |
# +---------------------+

# +---------------------+
# |   App state         |   (Current, local-first, synced)
# |---------------------|
# | Quests, skills      |
# | Vault, journal      |
# | Companion profile   |
# +---------------------+

#    \    /
#     \  /
#      \/
# +------------------------------+
# |        Agent context         |   (Plain-text prompt fragment)
# |------------------------------|
# | SYSTEM STATE BLOCK           |
# | or compact LTM summary       |
# +------------------------------+
