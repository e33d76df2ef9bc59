"""
Unit tests for the Nikto command builder.

Run with: pytest tests/unit/test_command_builder.py -v
"""

import shlex

import pytest

from warden.config import ExecutionMode, OrchestratorConfig
from warden.nikto import (
    ScanRequest,
    build_nikto_args,
    build_nikto_command,
    sanitize_input,
    target_has_port,
)


SCAN_ID = "0f8c1a2e-0000-4000-8000-000000000001"


class TestSanitizeInput:
    """Test suite for sanitize_input()"""

    def test_strips_command_separator(self):
        """Test semicolons are removed but spacing is kept"""
        assert sanitize_input("test; rm -rf /") == "test rm -rf /"

    def test_strips_all_metacharacters(self):
        """Test every shell metacharacter is removed"""
        assert sanitize_input("a&b|c`d$e<f>g\\h") == "abcdefgh"

    def test_strips_line_terminators(self):
        """Test CR and LF are removed"""
        assert sanitize_input("example.com\r\n-evil") == "example.com-evil"

    def test_trims_whitespace(self):
        """Test surrounding whitespace is trimmed"""
        assert sanitize_input("  example.com ") == "example.com"

    def test_leaves_clean_input_untouched(self):
        """Test URLs without metacharacters pass through"""
        assert sanitize_input("https://example.com:8443/path?q=1") == (
            "https://example.com:8443/path?q=1"
        )


class TestTargetHasPort:
    """Test suite for target_has_port()"""

    @pytest.mark.parametrize("target", [
        "http://example.com:8080",
        "https://example.com:8443/admin",
        "192.168.1.1:8080",
        "example.com:443",
    ])
    def test_targets_with_port(self, target):
        """Test explicit ports are detected"""
        assert target_has_port(target) is True

    @pytest.mark.parametrize("target", [
        "http://example.com",
        "https://example.com/path",
        "example.com",
        "192.168.1.1",
        "example.com:99999",
        "example.com:abc",
        "http://example.com:99999",
        "http://example.com:0",
        "example.com:0",
    ])
    def test_targets_without_valid_port(self, target):
        """Test missing or invalid ports are not treated as ports"""
        assert target_has_port(target) is False


class TestBuildNiktoArgs:
    """Test suite for build_nikto_args()"""

    def test_minimal_url_target(self):
        """Test the default vector has no port, SSL or output flags"""
        request = ScanRequest(target="http://example.com")

        args = build_nikto_args(request, SCAN_ID, default_timeout=3600)

        assert args == ["-h", "http://example.com", "-timeout", "3600", "-nointeractive"]

    def test_explicit_port_and_ssl(self):
        """Test port and SSL flags are passed through"""
        request = ScanRequest(target="https://example.com", port=8443, ssl=True)

        args = build_nikto_args(request, SCAN_ID)

        assert args[args.index("-p") + 1] == "8443"
        assert "-ssl" in args
        assert "-nossl" not in args

    def test_nossl_flag(self):
        """Test -nossl is emitted without -ssl"""
        request = ScanRequest(target="example.com", nossl=True)

        args = build_nikto_args(request, SCAN_ID)

        assert "-nossl" in args
        assert "-ssl" not in args

    def test_port_omitted_when_target_has_port(self):
        """Test -p is dropped when the target already names a port"""
        request = ScanRequest(target="192.168.1.1:8080", port=9090)

        args = build_nikto_args(request, SCAN_ID)

        assert "-p" not in args
        assert args[:2] == ["-h", "192.168.1.1:8080"]

    def test_port_kept_when_url_port_is_zero(self):
        """Test a zero port in the URL does not suppress -p"""
        request = ScanRequest(target="http://example.com:0", port=8080)

        args = build_nikto_args(request, SCAN_ID)

        assert args[args.index("-p") + 1] == "8080"

    def test_all_options(self):
        """Test the full option set in order"""
        request = ScanRequest(
            target="https://example.com",
            port=8443,
            ssl=True,
            nolookup=True,
            vhost="test.example.com",
            timeout=1800,
            output_format="json",
        )

        args = build_nikto_args(request, SCAN_ID, temp_dir="/var/tmp")

        assert args == [
            "-h", "https://example.com",
            "-p", "8443",
            "-ssl",
            "-nolookup",
            "-vhost", "test.example.com",
            "-timeout", "1800",
            "-Format", "json",
            "-output", f"/var/tmp/nikto-output-{SCAN_ID}.json",
            "-nointeractive",
        ]

    def test_request_timeout_overrides_default(self):
        """Test the request timeout wins over the configured default"""
        request = ScanRequest(target="example.com", timeout=60)

        args = build_nikto_args(request, SCAN_ID, default_timeout=3600)

        assert args[args.index("-timeout") + 1] == "60"

    def test_json_output_path_is_unique_per_scan(self):
        """Test concurrent scans never share an output file"""
        request = ScanRequest(target="example.com", output_format="json")

        first = build_nikto_args(request, "scan-a")
        second = build_nikto_args(request, "scan-b")

        assert first[first.index("-output") + 1] != second[second.index("-output") + 1]

    def test_containerized_json_path_is_inside_container(self):
        """Test containerized runs write under the mounted /tmp"""
        request = ScanRequest(target="example.com", output_format="json")

        args = build_nikto_args(
            request, SCAN_ID, mode=ExecutionMode.CONTAINERIZED, temp_dir="/var/tmp"
        )

        assert args[args.index("-output") + 1] == f"/tmp/nikto-scan-{SCAN_ID}.json"


class TestBuildNiktoCommand:
    """Test suite for build_nikto_command()"""

    def test_local_text_command(self):
        """Test local mode runs the nikto binary directly"""
        config = OrchestratorConfig(nikto_binary="/opt/nikto/nikto.pl", temp_dir="/var/tmp")
        request = ScanRequest(target="example.com")

        command = build_nikto_command(request, SCAN_ID, config)

        assert command.program == "/opt/nikto/nikto.pl"
        assert command.args[:2] == ["-h", "example.com"]
        assert command.report_path is None
        assert command.describe().startswith("/opt/nikto/nikto.pl -h example.com")

    def test_local_json_command_has_report_path(self):
        """Test local JSON runs point the supervisor at the report file"""
        config = OrchestratorConfig(temp_dir="/var/tmp")
        request = ScanRequest(target="example.com", output_format="json")

        command = build_nikto_command(request, SCAN_ID, config)

        assert command.report_path == f"/var/tmp/nikto-output-{SCAN_ID}.json"
        assert command.report_path in command.args

    def test_containerized_text_command(self):
        """Test containerized text runs invoke docker directly"""
        config = OrchestratorConfig(
            execution_mode="containerized",
            docker_image="nikto:test",
            docker_network="bridge",
            temp_dir="/var/tmp",
        )
        request = ScanRequest(target="example.com")

        command = build_nikto_command(request, SCAN_ID, config)

        assert command.program == "docker"
        assert command.args[:6] == [
            "run", "--rm", "--network=bridge", "-v", "/var/tmp:/tmp", "nikto:test",
        ]
        assert command.args[6:8] == ["-h", "example.com"]
        assert command.report_path is None

    def test_containerized_json_command_prints_and_removes_report(self):
        """Test containerized JSON runs cat then delete the host report"""
        config = OrchestratorConfig(
            execution_mode="docker",
            docker_image="nikto:test",
            temp_dir="/var/tmp",
        )
        request = ScanRequest(target="example.com", output_format="json")

        command = build_nikto_command(request, SCAN_ID, config)

        assert command.program == "sh"
        assert command.args[0] == "-c"
        script = command.args[1]
        host_report = f"/var/tmp/nikto-scan-{SCAN_ID}.json"
        assert script.startswith("docker run --rm --network=host -v /var/tmp:/tmp nikto:test")
        assert f"-output /tmp/nikto-scan-{SCAN_ID}.json" in script
        assert f"cat {host_report}" in script
        assert f"rm -f {host_report}" in script
        assert script.endswith("exit $rc")

    def test_shell_script_quotes_arguments(self):
        """Test values are shell-quoted inside the sh -c script"""
        config = OrchestratorConfig(execution_mode="containerized", temp_dir="/tmp/my scans")
        request = ScanRequest(target="example.com", output_format="json")

        command = build_nikto_command(request, SCAN_ID, config)

        assert shlex.quote("/tmp/my scans:/tmp") in command.args[1]
