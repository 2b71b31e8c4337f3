"""Run the compose-pack command line tool."""

from compose_pack.tool.compose_pack import main

main()
