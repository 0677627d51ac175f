from gguf_launcher.cli import main

main()
