from unittest import TestCase

import confuse

from ctffit import config


class ConfigTest(TestCase):
    def testDefaults(self):
        self.assertEqual(config["ctf"]["defocus"]["seed"].get(float), 20000.0)
        self.assertEqual(config["ctf"]["pipeline"]["max_rounds"].get(int), 10)
        self.assertEqual(config["ctf"]["astigmatism"]["n_angles"].get(int), 9)
        self.assertEqual(
            config["ctf"]["water_ring"]["bands"].get(list), [0.1, 0.2, 0.3, 0.4]
        )
        self.assertIn(config["common"]["fft"].as_str(), ["scipy", "numpy"])

    def testOverride(self):
        # Values set at runtime take precedence until removed
        config.set({"ctf": {"pipeline": {"max_rounds": 3}}})
        try:
            self.assertEqual(config["ctf"]["pipeline"]["max_rounds"].get(int), 3)
        finally:
            config.sources.pop(0)
        self.assertEqual(config["ctf"]["pipeline"]["max_rounds"].get(int), 10)

    def testMissing(self):
        with self.assertRaises(confuse.NotFoundError):
            config["ctf"]["no_such_option"].get()
