from datamine_exporter.cli import main

main()
