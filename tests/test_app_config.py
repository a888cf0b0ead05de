import unittest

from swe_agent_loop.app_config import AppConfig, RuntimeEnv, apply_runtime_env, parse_app_config


def _env(**overrides) -> RuntimeEnv:
    values = {
        "anthropic_api_key": "",
        "model_override": None,
        "bedrock_aws_accounts": None,
        "bedrock_role_name": None,
        "aws_region": None,
        "worker_id": None,
    }
    values.update(overrides)
    return RuntimeEnv(**values)


class AppConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        app = parse_app_config({})
        self.assertEqual("bedrock", app.provider_name)
        self.assertEqual(["sonnet3.7"], app.models)
        self.assertEqual(80_000, app.max_input_tokens)
        self.assertEqual(1024, app.reasoning_budget_tokens)
        self.assertEqual(300, app.progress_reminder_seconds)
        self.assertEqual([], app.bedrock_aws_accounts)
        self.assertIsNone(app.model_override)

    def test_values_from_config_file(self) -> None:
        app = parse_app_config({
            "Provider": "Anthropic",
            "Models": "sonnet3.7, haiku3.5",
            "BedrockAwsAccounts": ["111", " 222 "],
            "MaxInputTokens": "60000",
            "ModelOverride": "  ",
            "McpServers": {"github": {"command": "gh-mcp"}},
        })
        self.assertEqual("anthropic", app.provider_name)
        self.assertEqual(["sonnet3.7", "haiku3.5"], app.models)
        self.assertEqual(["111", "222"], app.bedrock_aws_accounts)
        self.assertEqual(60_000, app.max_input_tokens)
        self.assertIsNone(app.model_override)
        self.assertIn("github", app.mcp_server_configs)

    def test_environment_takes_precedence(self) -> None:
        app = apply_runtime_env(
            AppConfig(bedrock_aws_accounts=["111"], aws_region="us-east-1"),
            _env(
                model_override="haiku3.5",
                bedrock_aws_accounts=["333", "444"],
                bedrock_role_name="custom-role",
                aws_region="eu-west-1",
                worker_id="worker-7",
            ),
        )
        self.assertEqual("haiku3.5", app.model_override)
        self.assertEqual(["333", "444"], app.bedrock_aws_accounts)
        self.assertEqual("custom-role", app.bedrock_role_name)
        self.assertEqual("eu-west-1", app.aws_region)
        self.assertEqual("worker-7", app.conversation_id)

    def test_unset_environment_keeps_config_values(self) -> None:
        app = apply_runtime_env(AppConfig(bedrock_aws_accounts=["111"]), _env())
        self.assertEqual(["111"], app.bedrock_aws_accounts)
        self.assertEqual("us-west-2", app.aws_region)


if __name__ == "__main__":
    unittest.main()
