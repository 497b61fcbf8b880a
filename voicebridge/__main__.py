from voicebridge.main import main

main()
