"""GitHub SOPS secret management bot.

This package provisions GPG keys for repositories that opt in through
``.github/secret-management.yaml``:
- GitHub webhook routing (push, repository.created, repository_dispatch)
- Subscription descriptor parsing
- GPG key pair generation in an ephemeral keyring
- Sealed-box publication of the private key as the ``GPG_KEY`` secret
- Single-file commit of the public key to ``.github/.gpg``
"""
