"""
PhaseGate CLI Tests

Runs the command line end to end: keygen, hypotheses, review, verify.
"""

import contextlib
import io
import json
import os
import shutil
import tempfile
import unittest

from phasegate import Corpus, create_unit
from phasegate.cli import EXIT_INCONCLUSIVE, EXIT_INPUT_ERROR, EXIT_OK, main


SEND_HANDLER = """func (k msgServer) Send(ctx context.Context, msg *MsgSend) error {
    return k.SubtractBalance(ctx, msg.From, msg.Amount)
}"""

SUBTRACT_BALANCE = """func (k Keeper) SubtractBalance(ctx sdk.Context, addr sdk.AccAddress, amt sdk.Coin) error {
    balance := k.GetBalance(ctx, addr, amt.Denom)
    balance = balance.Sub(amt)
    if balance.IsNegative() {
        return ErrInsufficientFunds
    }
    k.SetBalance(ctx, addr, balance)
    return nil
}"""


class TestCLI(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        corpus = Corpus([
            create_unit("msg_server.go::Send", "cosmos_sdk", SEND_HANDLER, kind="entry_point",
                        source_path="x/bank/keeper/msg_server.go", start_line=31),
            create_unit("send.go::SubtractBalance", "cosmos_sdk", SUBTRACT_BALANCE,
                        source_path="x/bank/keeper/send.go", start_line=112),
        ], complete=True)
        self.corpus_path = self._write("corpus.json", corpus.to_dict())

    def tearDown(self):
        shutil.rmtree(self.tmp)

    def _path(self, name):
        return os.path.join(self.tmp, name)

    def _write(self, name, data):
        path = self._path(name)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f)
        return path

    def _read(self, name):
        with open(self._path(name), "r", encoding="utf-8") as f:
            return json.load(f)

    def _run(self, *argv):
        out, err = io.StringIO(), io.StringIO()
        with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
            code = main(["--log-level", "ERROR"] + list(argv))
        return code, out.getvalue()

    def test_severity(self):
        code, out = self._run("severity", "direct fund loss, permissionless, no special conditions")
        self.assertEqual(code, EXIT_OK)
        self.assertEqual(json.loads(out)["severity"], "CRITICAL/HIGH")

    def test_severity_with_ecosystem_override(self):
        code, out = self._run("severity", "temporary DoS, permissionless, no special conditions",
                              "--ecosystem", "cosmos_sdk")
        self.assertEqual(code, EXIT_OK)
        self.assertEqual(json.loads(out)["severity"], "CRITICAL/HIGH")

    def test_unmapped_severity(self):
        code, _ = self._run("severity", "reputational damage")
        self.assertEqual(code, EXIT_INPUT_ERROR)

    def test_classify(self):
        code, out = self._run("classify", "-c", self.corpus_path)
        self.assertEqual(code, EXIT_OK)
        labels = json.loads(out)["classifications"]
        self.assertEqual(labels["send.go::SubtractBalance"], ["SNAPSHOT", "VALIDATION", "MUTATION", "COMMIT"])

    def test_missing_corpus_file(self):
        code, _ = self._run("classify", "-c", self._path("nope.json"))
        self.assertEqual(code, EXIT_INPUT_ERROR)

    def test_zero_cap_rejected(self):
        code, _ = self._run("hypotheses", "-c", self.corpus_path, "--cap", "0")
        self.assertEqual(code, EXIT_INPUT_ERROR)
        code, _ = self._run("review", "-c", self.corpus_path, "--threshold", "1000", "--cap", "0")
        self.assertEqual(code, EXIT_INPUT_ERROR)

    def test_mistyped_corpus_fields(self):
        data = self._read("corpus.json")
        data["units"][0]["start_line"] = "31"
        code, _ = self._run("classify", "-c", self._write("bad_line.json", data))
        self.assertEqual(code, EXIT_INPUT_ERROR)

        data = self._read("corpus.json")
        data["complete"] = "false"
        code, _ = self._run("classify", "-c", self._write("bad_complete.json", data))
        self.assertEqual(code, EXIT_INPUT_ERROR)

    def test_review_without_evidence_is_inconclusive(self):
        code, _ = self._run("review", "-c", self.corpus_path, "--threshold", "1000",
                            "-K", self._path("missing-key.json"), "-o", self._path("record.json"))
        # an explicit key file that does not exist is an input error
        self.assertEqual(code, EXIT_INPUT_ERROR)

        code, _ = self._run("keygen", "-K", self._path("key.json"), "-o", self._path("trust.json"))
        self.assertEqual(code, EXIT_OK)

        code, _ = self._run("review", "-c", self.corpus_path, "--threshold", "1000",
                            "-K", self._path("key.json"), "-o", self._path("record.json"))
        self.assertEqual(code, EXIT_INCONCLUSIVE)
        self.assertEqual(self._read("record.json")["summary"]["INCONCLUSIVE"], 1)

    def test_review_sign_and_verify(self):
        self.assertEqual(self._run("keygen", "-K", self._path("key.json"),
                                   "-o", self._path("trust.json"))[0], EXIT_OK)

        code, _ = self._run("hypotheses", "-c", self.corpus_path, "-o", self._path("hyps.json"))
        self.assertEqual(code, EXIT_OK)
        hid = self._read("hyps.json")["hypotheses"][0]["hypothesis_id"]
        evidence_path = self._write("evidence.json", {hid: {"cost_estimate": "25"}})

        code, _ = self._run("review", "-c", self.corpus_path, "-e", evidence_path, "--threshold", "1000",
                            "-K", self._path("key.json"), "-o", self._path("record.json"),
                            "--report", self._path("report.md"))
        self.assertEqual(code, EXIT_OK)
        self.assertEqual(len(self._read("record.json")["results"]["findings"]), 1)
        self.assertTrue(os.path.exists(self._path("report.md")))

        code, out = self._run("verify", "-r", self._path("record.json"), "-c", self.corpus_path,
                              "-e", evidence_path, "-t", self._path("trust.json"))
        self.assertEqual(code, EXIT_OK, out)

        tampered = self._write("evidence2.json", {hid: {"cost_estimate": "26"}})
        code, out = self._run("verify", "-r", self._path("record.json"), "-c", self.corpus_path,
                              "-e", tampered, "-t", self._path("trust.json"))
        self.assertEqual(code, EXIT_INCONCLUSIVE)
        self.assertIn("Evidence hash mismatch", out)

    def test_hash(self):
        code, out = self._run("hash", "-f", self.corpus_path)
        self.assertEqual(code, EXIT_OK)
        self.assertTrue(out.startswith("corpus_hash: sha256:"))

    def test_demo(self):
        code, out = self._run("demo")
        self.assertEqual(code, EXIT_OK)
        self.assertIn("Signed record verifies: VALID", out)


if __name__ == "__main__":
    unittest.main(verbosity=2)
