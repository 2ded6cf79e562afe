import ibm_db
import logging
import time

logger = logging.getLogger(__name__)

APPLICATION_NAME = "DB2POOL"


def build_connection_string(endpoint, credentials) -> str:
    """Db2 CLI connection string for an :class:`Endpoint` and :class:`Credentials`."""
    conn_str = "DATABASE={};HOSTNAME={};PORT={};PROTOCOL=TCPIP;UID={};PWD={};".format(
        endpoint.db_name, endpoint.db_host, endpoint.db_port,
        credentials.db_user, credentials.db_passwd)
    if endpoint.ssl:
        conn_str += "SECURITY=SSL;"
        if endpoint.ssl_ca_cert:
            conn_str += "SSLServerCertificate={};".format(endpoint.ssl_ca_cert)
    return conn_str


class Db2Connection:
    """A single Db2 session owned by a :class:`ConnectionPool`."""

    def __init__(self, conn, endpoint):
        self.conn = conn
        self.endpoint = endpoint
        self.connection_string_print = str(endpoint)
        self.created_at = time.time()

    def is_valid(self) -> bool:
        """
        Whether the underlying session is still usable.
        """
        if self.conn is None:
            return False
        try:
            return bool(ibm_db.active(self.conn))
        except Exception as e:
            logger.warning(f"[{self.connection_string_print}] validity check failed: {e}")
            return False

    def execute(self, query: str, params: list | tuple | None = None, max_rows: int | None = None) -> list:
        """
        Prepare and run ``query`` and return the fetched rows as tuples.

        Statements that produce no result set (DDL, INSERT) return an empty
        list. The statement handle is always freed.
        """
        if self.conn is None:
            raise RuntimeError(f"[{self.connection_string_print}] connection is closed")

        stmt = None
        rows = []
        try:
            stmt = ibm_db.prepare(self.conn, query)
            if params is not None:
                ibm_db.execute(stmt, tuple(params))
            else:
                ibm_db.execute(stmt)
            if ibm_db.num_fields(stmt):
                row = ibm_db.fetch_tuple(stmt)
                while row:
                    rows.append(tuple(row))
                    if max_rows is not None and len(rows) >= max_rows:
                        break
                    row = ibm_db.fetch_tuple(stmt)
            logger.debug(f"[{self.connection_string_print}] executed, {len(rows)} rows")
            return rows
        except Exception as e:
            logger.warning(f"[{self.connection_string_print}] failed to execute: {e}")
            raise
        finally:
            if stmt is not None:
                try:
                    ibm_db.free_stmt(stmt)
                except Exception as e:
                    logger.debug(f"[{self.connection_string_print}] failed to free statement: {e}")

    def commit(self):
        ibm_db.commit(self.conn)

    def close(self):
        """
        Close the DB2 connection.
        """
        try:
            if self.conn:
                ibm_db.close(self.conn)
                logger.info(f"[{self.connection_string_print}] closed")
        except Exception as e:
            logger.error(f"[{self.connection_string_print}] failed to close connection: {e}")
        finally:
            self.conn = None


class Db2Driver:
    """Opens :class:`Db2Connection` objects for a :class:`ConnectionPool`."""

    def __init__(self, exporter=None, application_name: str = APPLICATION_NAME):
        self.exporter = exporter
        self.application_name = application_name

    def connect(self, endpoint, credentials) -> Db2Connection:
        """
        Establish a new connection to the DB2 database.

        ``ibm_db.connect`` is used rather than ``pconnect`` so that closing a
        pooled connection really ends the session.
        """
        options = {
            ibm_db.SQL_ATTR_INFO_PROGRAMNAME: self.application_name,
            ibm_db.SQL_ATTR_INFO_WRKSTNNAME: self.application_name,
            ibm_db.SQL_ATTR_INFO_ACCTSTR: self.application_name,
            ibm_db.SQL_ATTR_INFO_APPLNAME: self.application_name
        }
        labels = {"dbhost": endpoint.db_host, "dbname": endpoint.db_name}
        try:
            conn = ibm_db.connect(build_connection_string(endpoint, credentials), "", "", options)
        except Exception as e:
            logger.error(f"[{endpoint}] {e}")
            self._set_status(0, labels)
            raise
        logger.info(f"[{endpoint}] connected")
        self._set_status(1, labels)
        return Db2Connection(conn, endpoint)

    def _set_status(self, value, labels):
        if self.exporter is not None:
            self.exporter.set_gauge("db2_connection_status", value, labels)
