"""Centralized constants for the provisioner.

Download locations, host paths and component ordering live here rather than
inside individual components.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Component ordering. Lower rank installs first; rollback walks the list in
# reverse so dependents are removed before what they depend on.
# ---------------------------------------------------------------------------
COMPONENT_RANKS: dict[str, int] = {
    "prerequisites": 0,
    "ansible": 10,
    "terraform": 20,
    "java": 30,
    "jenkins": 40,
    "awscli": 50,
    "sandbox-stack": 60,
}

PREREQUISITE_PACKAGES: tuple[str, ...] = (
    "curl",
    "wget",
    "unzip",
    "gnupg",
    "lsb-release",
    "ca-certificates",
    "software-properties-common",
    "apt-transport-https",
)

# ---------------------------------------------------------------------------
# APT layout
# ---------------------------------------------------------------------------
APT_SOURCES_DIR = "/etc/apt/sources.list.d"
APT_KEYRINGS_DIR = "/usr/share/keyrings"
APT_TRUSTED_DIR = "/etc/apt/trusted.gpg.d"

ANSIBLE_PPA = "ppa:ansible/ansible"
ANSIBLE_PPA_MARKER = "ppa.launchpadcontent.net/ansible/ansible"

HASHICORP_KEY_URL = "https://apt.releases.hashicorp.com/gpg"
HASHICORP_REPO_URL = "https://apt.releases.hashicorp.com"

JENKINS_KEY_URL = "https://pkg.jenkins.io/debian-stable/jenkins.io.key"
JENKINS_REPO_URL = "https://pkg.jenkins.io/debian-stable"

# ---------------------------------------------------------------------------
# Directly downloaded artifacts
# ---------------------------------------------------------------------------
JENKINS_WAR_URL = "https://get.jenkins.io/war-stable/latest/jenkins.war"
JENKINS_INSTALL_DIR = "/opt/jenkins"
JENKINS_MIN_WAR_SIZE = 50 * 1024 * 1024

AWSCLI_DOWNLOAD_URL = "https://awscli.amazonaws.com/awscli-exe-linux-x86_64.zip"
AWSCLI_MIN_SIZE = 10 * 1024 * 1024
AWSCLI_UNINSTALLER = "/usr/local/aws-cli/v2/current/uninstall"
AWSCLI_INSTALLED_PATHS: tuple[str, ...] = (
    "/usr/local/aws-cli",
    "/usr/local/bin/aws",
    "/usr/local/bin/aws_completer",
    "/usr/bin/aws",
)

ZIP_SIGNATURE = b"PK\x03\x04"

# Number of trailing output lines kept as diagnostics on failure.
DIAGNOSTIC_TAIL_LINES = 20
