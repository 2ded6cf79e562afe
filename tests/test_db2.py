import unittest
from unittest.mock import patch, MagicMock

from db2Pool.config_manager import Credentials, Endpoint
from db2Pool.db2 import Db2Connection, Db2Driver, build_connection_string

ENDPOINT = Endpoint(db_host="localhost", db_port=50000, db_name="test_db")
CREDENTIALS = Credentials(db_user="user", db_passwd="pass")


class TestConnectionString(unittest.TestCase):

    def test_plain(self):
        self.assertEqual(
            build_connection_string(ENDPOINT, CREDENTIALS),
            "DATABASE=test_db;HOSTNAME=localhost;PORT=50000;PROTOCOL=TCPIP;UID=user;PWD=pass;",
        )

    def test_ssl(self):
        endpoint = ENDPOINT.model_copy(update={"ssl": True, "ssl_ca_cert": "/certs/ca.arm"})
        conn_str = build_connection_string(endpoint, CREDENTIALS)
        self.assertTrue(conn_str.endswith("SECURITY=SSL;SSLServerCertificate=/certs/ca.arm;"))


@patch('db2Pool.db2.ibm_db')
class TestDb2Driver(unittest.TestCase):

    def test_connect_success(self, mock_ibm_db):
        """Test that the DB2 connection is established successfully."""
        mock_ibm_db.connect.return_value = "mock_connection"
        mock_exporter = MagicMock()
        conn = Db2Driver(exporter=mock_exporter).connect(ENDPOINT, CREDENTIALS)
        self.assertIsInstance(conn, Db2Connection)
        self.assertEqual(conn.conn, "mock_connection")
        self.assertEqual(conn.connection_string_print, "localhost:50000/test_db")
        mock_exporter.set_gauge.assert_called_with(
            "db2_connection_status",
            1,
            {"dbhost": "localhost", "dbname": "test_db"},
        )

    def test_connect_failure(self, mock_ibm_db):
        """Driver errors propagate unchanged and flag the database as unreachable."""
        mock_ibm_db.connect.side_effect = Exception("Connection failed")
        mock_exporter = MagicMock()
        with self.assertRaisesRegex(Exception, "Connection failed"):
            Db2Driver(exporter=mock_exporter).connect(ENDPOINT, CREDENTIALS)
        mock_exporter.set_gauge.assert_called_with(
            "db2_connection_status",
            0,
            {"dbhost": "localhost", "dbname": "test_db"},
        )

    def test_connect_without_exporter(self, mock_ibm_db):
        mock_ibm_db.connect.return_value = "mock_connection"
        self.assertEqual(Db2Driver().connect(ENDPOINT, CREDENTIALS).conn, "mock_connection")


@patch('db2Pool.db2.ibm_db')
class TestDb2Connection(unittest.TestCase):

    def test_execute_query(self, mock_ibm_db):
        """Test that a SQL query is executed successfully."""
        mock_ibm_db.prepare.return_value = "mock_statement"
        mock_ibm_db.num_fields.return_value = 2
        mock_ibm_db.fetch_tuple.side_effect = [(1, "data"), (2, "more"), False]
        conn = Db2Connection("mock_connection", ENDPOINT)

        rows = conn.execute("SELECT * FROM table WHERE id > ?", params=[0])

        self.assertEqual(rows, [(1, "data"), (2, "more")])
        mock_ibm_db.execute.assert_called_once_with("mock_statement", (0,))
        mock_ibm_db.free_stmt.assert_called_once_with("mock_statement")

    def test_execute_max_rows(self, mock_ibm_db):
        mock_ibm_db.num_fields.return_value = 1
        mock_ibm_db.fetch_tuple.side_effect = [(1,), (2,), (3,), False]
        conn = Db2Connection("mock_connection", ENDPOINT)
        self.assertEqual(conn.execute("SELECT id FROM t", max_rows=2), [(1,), (2,)])

    def test_execute_statement_without_result_set(self, mock_ibm_db):
        mock_ibm_db.num_fields.return_value = False
        conn = Db2Connection("mock_connection", ENDPOINT)
        self.assertEqual(conn.execute("INSERT INTO t VALUES (?)", (1,)), [])
        mock_ibm_db.fetch_tuple.assert_not_called()

    def test_execute_failure_frees_statement(self, mock_ibm_db):
        mock_ibm_db.prepare.return_value = "mock_statement"
        mock_ibm_db.execute.side_effect = Exception("SQL0204N")
        conn = Db2Connection("mock_connection", ENDPOINT)
        with self.assertRaises(Exception):
            conn.execute("SELECT * FROM missing")
        mock_ibm_db.free_stmt.assert_called_once_with("mock_statement")

    def test_execute_on_closed_connection(self, mock_ibm_db):
        conn = Db2Connection(None, ENDPOINT)
        with self.assertRaises(RuntimeError):
            conn.execute("SELECT 1 FROM sysibm.sysdummy1")

    def test_is_valid(self, mock_ibm_db):
        conn = Db2Connection("mock_connection", ENDPOINT)
        mock_ibm_db.active.return_value = True
        self.assertTrue(conn.is_valid())
        mock_ibm_db.active.return_value = False
        self.assertFalse(conn.is_valid())
        mock_ibm_db.active.side_effect = Exception("gone")
        self.assertFalse(conn.is_valid())

    def test_close_is_idempotent(self, mock_ibm_db):
        conn = Db2Connection("mock_connection", ENDPOINT)
        conn.close()
        conn.close()
        mock_ibm_db.close.assert_called_once_with("mock_connection")
        self.assertIsNone(conn.conn)
        self.assertFalse(conn.is_valid())

    def test_close_failure_is_logged(self, mock_ibm_db):
        mock_ibm_db.close.side_effect = Exception("close failed")
        conn = Db2Connection("mock_connection", ENDPOINT)
        with self.assertLogs("db2Pool.db2", level="ERROR"):
            conn.close()
        self.assertIsNone(conn.conn)


if __name__ == '__main__':
    unittest.main()
