"""Project membership, tool access grants, invitations and public share links."""
