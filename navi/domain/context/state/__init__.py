# State = the user's whole local app data at this moment: profile, quests,
# skills, vault, journal, chat threads and the companion profile.

# It is persisted locally first and pushed to the backend opportunistically;
# the local copy is always authoritative for the running app.
