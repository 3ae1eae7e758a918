import threading


class Coordinator:
    """Process-scoped registries shared by the execution and presence paths.

    Every socket handler, sweeper pass and sandbox event relay mutates these
    maps only while holding ``lock``, so each handler sees a consistent view
    between mutations. The lock is re-entrant because a forced disconnect can
    run the disconnect handler while the evicting join still holds it.
    """

    def __init__(self):
        self.lock = threading.RLock()

        # execution path
        self.sessions = {}        # session id -> CodeSession
        self.documents = {}       # document id -> Document
        self.session_users = {}   # session id -> {connection id -> User}
        self.session_connections = {}  # connection id -> session id
        self.executions = {}      # session id -> ExecutionHandle

        # presence path
        self.users = {}           # connection id -> User
        self.rooms = {}           # room id -> Room
        self.usernames = {}       # display name -> UsernameRecord
