import contextlib
import io
import unittest

from ttexport.cli import main


class CliArgsTests(unittest.TestCase):
    def test_bad_date_is_usage_error(self) -> None:
        with contextlib.redirect_stderr(io.StringIO()) as err:
            with self.assertRaises(SystemExit) as cm:
                main(["export", "--date", "14.11.2023"])
        self.assertEqual(cm.exception.code, 2)
        self.assertIn("YYYY-MM-DD", err.getvalue())

    def test_subcommand_required(self) -> None:
        with contextlib.redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit):
                main([])


if __name__ == "__main__":
    unittest.main()
